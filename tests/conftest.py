# tests/conftest.py
"""
Fixtures compartilhados para testes do Atlas InfraFlow.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações mínimas e determinísticas do engine (sem backoff real)
- contexto de execução controlado (RunContext)
- State Store em memória e Fake Cloud com adapters por kind
- YAMLs de configuração para testes do loader

Decisões arquiteturais:
    - Fixtures são mantidas simples e explícitas
    - Nenhuma fixture faz chamadas de rede
    - Imports do core são realizados de forma lazy para
      melhorar a clareza de erros durante falhas

Limites explícitos:
    - Não substituir testes de integração (ver tests/e2e)
    - Não conter lógica condicional complexa
"""

import pytest
from datetime import datetime, timezone


# =====================================================
# Config Loader fixtures
# =====================================================

@pytest.fixture
def project_like_config_defaults_yaml() -> str:
    """
    YAML de configuração base semelhante ao uso real do projeto.

    Representa o conteúdo típico de um `infraflow.defaults.yaml`, sobre o
    qual overrides locais são aplicados via deep-merge.
    """
    return """
engine:
  max_workers: 8
  fail_fast: false
  retry:
    max_attempts: 5
    backoff_seconds: 2
    backoff_multiplier: 2.0
    max_backoff_seconds: 60
state:
  path: .infraflow/state
tags:
  - team-platform
"""


@pytest.fixture
def project_like_config_local_yaml() -> str:
    """Override local: menos paralelismo e fail-fast para depuração."""
    return """
engine:
  max_workers: 2
  fail_fast: true
tags:
  - local
"""


# =====================================================
# Engine fixtures (config + RunContext + State + Cloud)
# =====================================================

@pytest.fixture
def engine_config() -> dict:
    """Configuração efetiva mínima: retry sem espera real."""
    return {
        "engine": {
            "max_workers": 4,
            "fail_fast": False,
            "retry": {
                "max_attempts": 3,
                "backoff_seconds": 0.0,
                "backoff_multiplier": 2.0,
                "max_backoff_seconds": 0.0,
            },
        },
        "state": {"path": None},
    }


@pytest.fixture
def run_ctx(engine_config):
    """
    RunContext determinístico para testes do executor.

    O import é lazy para que falhas de import apareçam como falha do
    teste que usa a fixture, não como erro de coleta.
    """
    from atlas_infraflow.core.run_context import RunContext

    return RunContext(
        run_id="test-run-001",
        created_at=datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc).isoformat(),
        config=engine_config,
        meta={},
    )


@pytest.fixture
def memory_store():
    from atlas_infraflow.persistence.state_store import StateStore

    return StateStore()


@pytest.fixture
def fake_cloud():
    from tests.fixtures.providers.fake_cloud import FakeCloud

    return FakeCloud()


@pytest.fixture
def scenario_providers(fake_cloud):
    """Adapters para os kinds dos cenários N/S/X/Y e A/B/C."""
    from tests.fixtures.declarations import SCENARIO_KINDS

    return fake_cloud.registry(SCENARIO_KINDS + ["bucket", "queue", "worker"])


@pytest.fixture
def topology_providers(fake_cloud):
    """Adapters para a topologia de referência; subnets mudam de CIDR via replace."""
    from tests.fixtures.declarations import TOPOLOGY_KINDS

    return fake_cloud.registry(
        TOPOLOGY_KINDS,
        immutable={"subnet": ["cidr_block", "availability_zone"], "database": ["engine"]},
    )


@pytest.fixture
def no_sleep():
    """Substituto de `time.sleep` que apenas registra as esperas pedidas."""
    delays = []

    def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep
