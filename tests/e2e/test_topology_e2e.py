"""
E2E — Topologia de referência (VPC, subnets, ALB, instâncias, banco)

Cenário:
- declarações carregadas de `tests/fixtures/topology.yaml`
- configuração efetiva via defaults + override local (deep-merge)
- State Store em diretório JSON, vindo de `state.path` da configuração
- Fake Cloud como Provider Adapters

Esperado:
- primeira run cria os 13 recursos em ordem de dependência
- o DNS do load balancer aparece nas saídas da run
- o Manifest é persistido com todos os Steps concluídos
- um segundo plano (mesmas declarações) é todo NoOp
- trocar o CIDR de uma subnet recria a subnet e atualiza seus dependentes
- remover o banco apaga o banco e o security group exclusivo dele
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import yaml

from atlas_infraflow.core.config.loader import load_config
from atlas_infraflow.core.engine.engine import Engine
from atlas_infraflow.core.engine.review import auto_approve
from atlas_infraflow.core.model.loader import load_declarations, parse_declarations
from atlas_infraflow.core.model.types import Action, ResourceKey
from atlas_infraflow.core.run_context import RunContext
from atlas_infraflow.core.traceability.manifest import load_manifest

from tests.fixtures.declarations import TOPOLOGY_PATH


def _config(tmp_path: Path) -> dict:
    defaults = tmp_path / "infraflow.defaults.yaml"
    local = tmp_path / "infraflow.local.yaml"
    defaults.write_text(
        yaml.safe_dump(
            {
                "engine": {"max_workers": 4, "retry": {"max_attempts": 2, "backoff_seconds": 0.0}},
                "state": {"path": str(tmp_path / "state")},
            }
        ),
        encoding="utf-8",
    )
    local.write_text(yaml.safe_dump({"engine": {"max_workers": 3}}), encoding="utf-8")
    return load_config(defaults_path=defaults, local_path=local)


def _engine(declarations, config, providers, run_id) -> Engine:
    ctx = RunContext(
        run_id=run_id,
        created_at=datetime.now(timezone.utc).isoformat(),
        config=config,
        meta={},
    )
    return Engine(
        declarations=declarations,
        providers=providers,
        ctx=ctx,
    )


def _edited_topology(edit) -> list:
    data = yaml.safe_load(TOPOLOGY_PATH.read_text(encoding="utf-8"))
    edit(data["resources"])
    return list(parse_declarations(data))


def test_topology_lifecycle(tmp_path: Path, topology_providers, fake_cloud, no_sleep) -> None:
    config = _config(tmp_path)
    assert config["engine"]["max_workers"] == 3
    declarations = load_declarations(TOPOLOGY_PATH)

    # 1) criação completa
    engine = _engine(declarations, config, topology_providers, "e2e-create")
    plan = engine.plan()
    assert plan.summary()["create"] == 13

    manifest_path = tmp_path / "runs" / "e2e-create" / "manifest.json"
    result = engine.apply(plan, approver=auto_approve, sleep=no_sleep, manifest_path=manifest_path)

    assert result.ok
    assert len(result.succeeded) == 13
    assert result.outputs["load_balancer.web"]["dns_name"] == "web.elb.fake.internal"
    assert result.outputs["database.main"]["endpoint"].endswith(".db.fake.internal:5432")
    assert len(fake_cloud.resources) == 13

    creates = [(kind, name) for _, kind, name in fake_cloud.ops("create")]
    assert creates.index(("vpc", "main")) == 0
    assert creates.index(("instance", "web_a")) < creates.index(("load_balancer", "web"))
    assert creates.index(("security_group", "web")) < creates.index(("security_group", "db"))

    manifest = load_manifest(manifest_path)
    assert manifest.inputs["plan_id"] == plan.plan_id
    assert all(manifest.step_status(sid) == "succeeded" for sid in result.steps)

    state_dir = Path(config["state"]["path"])
    assert (state_dir / "subnet" / "public_a.json").exists()
    assert len(list(state_dir.glob("*/*.json"))) == 13

    # 2) idempotência: nova engine, mesmo diretório de estado
    again = _engine(declarations, config, topology_providers, "e2e-noop")
    assert again.plan().is_empty

    # 3) CIDR imutável: replace da subnet e update dos dependentes
    def change_cidr(resources):
        for r in resources:
            if r["kind"] == "subnet" and r["name"] == "public_b":
                r["attributes"]["cidr_block"] = "10.0.3.0/24"

    changed = _engine(_edited_topology(change_cidr), config, topology_providers, "e2e-replace")
    old_subnet = changed.store.get(ResourceKey("subnet", "public_b")).provider_id
    replace_plan = changed.plan()
    assert [(s.key, s.action) for s in replace_plan.changes] == [
        (ResourceKey("subnet", "public_b"), Action.REPLACE)
    ]

    replaced = changed.apply(replace_plan, approver=auto_approve, sleep=no_sleep)

    assert replaced.ok
    new_subnet = changed.store.get(ResourceKey("subnet", "public_b")).provider_id
    assert new_subnet != old_subnet
    for sid in ("instance.web_b", "route_table.public", "load_balancer.web"):
        assert replaced.steps[sid].effective_action is Action.UPDATE
    assert replaced.steps["instance.web_a"].effective_action is Action.NOOP
    lb = changed.store.get(ResourceKey("load_balancer", "web"))
    assert new_subnet in lb.last_applied_attributes["subnet_ids"]

    # 4) remoção do banco e do security group exclusivo dele
    def drop_database(resources):
        resources[:] = [
            r for r in resources
            if (r["kind"], r["name"]) not in {("database", "main"), ("security_group", "db")}
        ]

    shrunk = _engine(_edited_topology(drop_database), config, topology_providers, "e2e-delete")
    delete_plan = shrunk.plan()
    assert [str(s.key) for s in delete_plan.changes] == ["database.main", "security_group.db"]

    deleted = shrunk.apply(delete_plan, approver=auto_approve, sleep=no_sleep)

    assert deleted.ok
    assert [kind for _, kind, _ in fake_cloud.ops("delete")][-2:] == ["database", "security_group"]
    assert not (state_dir / "database" / "main.json").exists()
    assert _engine(_edited_topology(drop_database), config, topology_providers, "e2e-final").plan().is_empty
