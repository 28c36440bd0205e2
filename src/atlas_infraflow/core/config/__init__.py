# src/atlas_infraflow/core/config/__init__.py

"""
Camada de configuração do Atlas InfraFlow.

Este pacote contém as estruturas e utilitários responsáveis por carregar,
mesclar, validar e identificar a configuração do engine (paralelismo,
política de retry, fail-fast e localização do State Store).

Responsabilidades do pacote:
    - Defaults embutidos (`DEFAULT_CONFIG`)
    - Carregamento de arquivos de configuração (base + overrides locais)
    - Resolução de configuração final via deep-merge determinístico
    - Leitura tipada de `engine.*` e `state.path` (`resolve_engine_settings`, `resolve_state_path`)
    - Geração de hash canônico para rastreabilidade

Invariantes:
    - A configuração final é um dicionário puro (dict)
    - Conflitos estruturais são tratados como erro

Limites explícitos:
    - Não planeja nem executa
    - Não conhece declarações de recursos
"""

from .errors import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigTypeConflictError,
    InvalidConfigRootTypeError,
    InvalidEngineSettingsError,
    UnsupportedConfigFormatError,
)
from .hashing import canonical_hash, compute_config_hash
from .loader import load_config
from .merge import deep_merge
from .settings import DEFAULT_CONFIG, EngineSettings, RetrySettings, resolve_engine_settings, resolve_state_path

__all__ = [
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigTypeConflictError",
    "InvalidConfigRootTypeError",
    "InvalidEngineSettingsError",
    "UnsupportedConfigFormatError",
    "canonical_hash",
    "compute_config_hash",
    "load_config",
    "deep_merge",
    "DEFAULT_CONFIG",
    "EngineSettings",
    "RetrySettings",
    "resolve_engine_settings",
    "resolve_state_path",
]
