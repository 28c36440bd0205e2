# src/atlas_infraflow/core/engine/planner.py
"""
Planner — reconciliação entre declarações e State Store.

Este módulo compara o grafo de recursos declarados com os registros do
State Store e produz um `Plan`: uma sequência ordenada de `PlanStep`s,
cada um com sua ação (Create / Update / Replace / Delete / NoOp), o diff
de atributos literais e as dependências explícitas entre Steps.

Classificação por recurso:
    - Sem StateRecord → CREATE
    - Atributos literais divergentes → UPDATE (diff apenas com os nomes alterados);
      REPLACE quando o Provider Adapter do kind exige recriação
    - StateRecord sem declaração (ou alvo explícito de `destroy`) → DELETE
    - Alvo de `destroy` declarado mas sem StateRecord → NOOP
    - Caso contrário → NOOP

Atributos com referência nunca entram no diff literal: seus valores só
existem depois que a dependência foi aplicada. A aresta de dependência,
porém, continua ordenando a aplicação.

Decisões arquiteturais:
    - Create/Update/Replace/NoOp seguem a ordem topológica do grafo
      (Kahn determinístico, empates por `kind.name`)
    - Deleções formam uma subsequência separada, anexada ao final, em
      ordem de dependência **reversa** (dependente antes da dependência),
      usando as dependências gravadas nos StateRecords
    - Cada Step carrega `depends_on` explícito; o executor nunca
      re-deriva ordem a partir do texto dos atributos

Invariantes:
    - Todo recurso declarado ou registrado aparece em exatamente um Step
    - Sem mudanças nas declarações e sem drift, o plano é todo NOOP

Limites explícitos:
    - Não executa chamadas remotas
    - Não grava no State Store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from atlas_infraflow.core.config.hashing import canonical_hash
from atlas_infraflow.core.exceptions import PlanConflictError
from atlas_infraflow.core.graph.builder import ResourceGraph
from atlas_infraflow.core.model.types import (
    Action,
    DiffEntry,
    ResourceDeclaration,
    ResourceKey,
)
from atlas_infraflow.persistence.state_store import StateRecord, StateStore
from atlas_infraflow.providers.base import ProviderRegistry


_MISSING = object()


@dataclass(frozen=True)
class PlanStep:
    """
    Unidade de trabalho do plano: uma ação sobre um recurso.

    - diff: atributo → (antigo, novo), apenas atributos literais
    - depends_on: chaves dos Steps que precisam ter sucesso antes
    - deferred_attributes: atributos com referência ("conhecidos após o apply")
    - declaration: declaração desejada (None para DELETE de recurso não declarado)
    - prior: StateRecord existente (None para CREATE e para NOOP de destroy sem registro)
    """

    key: ResourceKey
    action: Action
    diff: Mapping[str, DiffEntry] = field(default_factory=dict)
    depends_on: FrozenSet[ResourceKey] = frozenset()
    deferred_attributes: Tuple[str, ...] = ()
    declaration: Optional[ResourceDeclaration] = field(default=None, compare=False)
    prior: Optional[StateRecord] = field(default=None, compare=False)

    @property
    def step_id(self) -> str:
        return str(self.key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": str(self.key),
            "kind": self.key.kind,
            "name": self.key.name,
            "action": self.action.value,
            "diff": {attr: {"old": old, "new": new} for attr, (old, new) in sorted(self.diff.items())},
            "deferred_attributes": list(self.deferred_attributes),
            "depends_on": sorted(str(k) for k in self.depends_on),
        }


@dataclass(frozen=True)
class Plan:
    """Plano ordenado, ligado ao snapshot do State Store sobre o qual foi calculado."""

    steps: Tuple[PlanStep, ...]
    state_fingerprint: str
    created_at: str

    @property
    def plan_id(self) -> str:
        return canonical_hash(
            {
                "state_fingerprint": self.state_fingerprint,
                "steps": [s.to_dict() for s in self.steps],
            }
        )

    @property
    def changes(self) -> List[PlanStep]:
        return [s for s in self.steps if s.action is not Action.NOOP]

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def keys(self) -> List[ResourceKey]:
        return [s.key for s in self.steps]

    def step(self, key: ResourceKey) -> PlanStep:
        for s in self.steps:
            if s.key == key:
                return s
        raise KeyError(str(key))

    def actions(self) -> Dict[ResourceKey, Action]:
        return {s.key: s.action for s in self.steps}

    def summary(self) -> Dict[str, int]:
        counts = {a.value: 0 for a in Action}
        for s in self.steps:
            counts[s.action.value] += 1
        return counts

    def report(self) -> Dict[str, Any]:
        """Resumo serializável para revisão do operador antes da execução."""
        return {
            "plan_id": self.plan_id,
            "created_at": self.created_at,
            "state_fingerprint": self.state_fingerprint,
            "summary": self.summary(),
            "steps": [s.to_dict() for s in self.steps],
        }


def literal_diff(declaration: ResourceDeclaration, record: StateRecord) -> Dict[str, DiffEntry]:
    """
    Diff entre atributos literais declarados e o último estado aplicado.

    Atributos que hoje são referências ficam fora da comparação, mesmo
    que o StateRecord guarde o valor resolvido aplicado anteriormente.
    """
    desired = declaration.literal_attributes()
    excluded = declaration.reference_attributes()
    applied = {k: v for k, v in record.last_applied_attributes.items() if k not in excluded}

    diff: Dict[str, DiffEntry] = {}
    for attr in sorted(set(desired) | set(applied)):
        old = applied.get(attr, _MISSING)
        new = desired.get(attr, _MISSING)
        if old == new:
            continue
        diff[attr] = (None if old is _MISSING else old, None if new is _MISSING else new)
    return diff


def _deletion_order(
    to_delete: Set[ResourceKey],
    records: Mapping[ResourceKey, StateRecord],
) -> List[ResourceKey]:
    """Kahn sobre as dependências gravadas, invertido: dependentes são removidos primeiro."""
    blockers: Dict[ResourceKey, Set[ResourceKey]] = {k: set() for k in to_delete}
    for key in to_delete:
        for dep in records[key].dependencies:
            if dep in to_delete:
                blockers[dep].add(key)

    remaining = {k: len(v) for k, v in blockers.items()}
    ready = sorted(k for k, c in remaining.items() if c == 0)
    order: List[ResourceKey] = []

    while ready:
        key = ready.pop(0)
        order.append(key)
        for dep in sorted(records[key].dependencies):
            if dep in remaining:
                remaining[dep] -= 1
                if remaining[dep] == 0:
                    ready.append(dep)
                    ready.sort()

    # dependências gravadas corrompidas (ciclo) não podem travar o plano
    leftovers = sorted(k for k in to_delete if k not in order)
    return order + leftovers


def _check_destroy_targets(
    graph: ResourceGraph,
    records: Mapping[ResourceKey, StateRecord],
    destroy: Set[ResourceKey],
) -> None:
    for key in sorted(destroy):
        if key not in graph and key not in records:
            raise PlanConflictError(
                message=f"Cannot destroy {key}: resource is neither declared nor recorded",
                details={"resource": str(key)},
            )
        if key not in graph:
            continue
        for dependent in sorted(graph.get(key).dependents):
            if dependent not in destroy:
                raise PlanConflictError(
                    message=f"{key} is marked for deletion but still required by {dependent}",
                    details={"resource": str(key), "required_by": str(dependent)},
                    hint="Remova também o dependente ou retire a referência antes de destruir o recurso.",
                )


def build_plan(
    graph: ResourceGraph,
    store: StateStore,
    *,
    providers: Optional[ProviderRegistry] = None,
    destroy: Iterable[ResourceKey] = (),
) -> Plan:
    """
    Calcula o plano de reconciliação entre o grafo declarado e o State Store.

    Args:
        graph: DAG produzido pelo graph builder.
        store: Handle explícito do State Store.
        providers: Registro de adapters; quando informado, decide UPDATE vs REPLACE.
        destroy: Recursos declarados que o operador quer remover.

    Returns:
        Plan: Steps ordenados (aplicações em ordem topológica, deleções ao final).

    Raises:
        PlanConflictError: Recurso marcado para deleção ainda requerido por um
            dependente sobrevivente.
    """
    records = store.all()
    fingerprint = store.fingerprint()
    destroy_set = set(destroy)
    _check_destroy_targets(graph, records, destroy_set)

    steps: List[PlanStep] = []
    for key in graph.topological_order():
        node = graph.get(key)
        decl = node.declaration
        prior = records.get(key)

        if key in destroy_set:
            if prior is None:
                # nunca aplicado: nada a deletar, mas o recurso continua enumerado
                steps.append(PlanStep(key=key, action=Action.NOOP, diff={}, depends_on=frozenset(), declaration=decl))
            continue

        deferred = tuple(sorted(decl.reference_attributes()))

        if prior is None:
            action = Action.CREATE
            diff = {attr: (None, value) for attr, value in sorted(decl.literal_attributes().items())}
        else:
            diff = literal_diff(decl, prior)
            if not diff:
                action = Action.NOOP
            elif providers is not None and providers.requires_replacement(key.kind, diff):
                action = Action.REPLACE
            else:
                action = Action.UPDATE

        steps.append(
            PlanStep(
                key=key,
                action=action,
                diff=diff,
                depends_on=node.dependencies,
                deferred_attributes=deferred,
                declaration=decl,
                prior=prior,
            )
        )

    to_delete = {k for k in records if k not in graph or k in destroy_set}

    for key in _deletion_order(to_delete, records):
        record = records[key]
        # deletar só depois dos dependentes gravados (removidos ou re-apontados)
        blockers = {
            other
            for other, other_record in records.items()
            if key in other_record.dependencies and other != key
        }
        steps.append(
            PlanStep(
                key=key,
                action=Action.DELETE,
                diff={attr: (value, None) for attr, value in sorted(record.last_applied_attributes.items())},
                depends_on=frozenset(blockers),
                declaration=graph.get(key).declaration if key in graph else None,
                prior=record,
            )
        )

    return Plan(
        steps=tuple(steps),
        state_fingerprint=fingerprint,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
