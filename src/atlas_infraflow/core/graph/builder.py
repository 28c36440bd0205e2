# src/atlas_infraflow/core/graph/builder.py
"""
Graph Builder — grafo de dependências entre recursos declarados.

Este módulo resolve as referências das declarações em arestas explícitas
e produz um DAG de `ResourceNode`s, pronto para o planner.

Uma aresta vai do recurso referenciado (dependência) para o recurso que
referencia (dependente). Depois de construído, o grafo é a única fonte
de ordenação: o executor nunca re-deriva dependências a partir do texto
de atributos.

Decisões arquiteturais:
    - Detecção de ciclo por DFS com marcação em três cores
      (unvisited / in-progress / done); uma aresta para um nó
      in-progress é um ciclo
    - Referências mútuas são sempre rejeitadas: não existe resolução
      diferida/preguiçosa
    - A ordenação topológica é determinística (Kahn, empates resolvidos
      por `kind.name` em ordem lexicográfica)

Invariantes:
    - Para entradas acíclicas, o conjunto de arestas é exatamente a relação
      de referência
    - Todo erro estrutural é um `ConfigurationError` levantado antes de
      qualquer chamada remota

Limites explícitos:
    - Não consulta o State Store
    - Não classifica ações (planner)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Set, Tuple

from atlas_infraflow.core.exceptions import CycleError, UnresolvedReferenceError
from atlas_infraflow.core.model.registry import DeclarationRegistry
from atlas_infraflow.core.model.types import ResourceDeclaration, ResourceKey


Edge = Tuple[ResourceKey, ResourceKey]


@dataclass(frozen=True)
class ResourceNode:
    """Declaração envolvida com suas arestas de entrada (dependencies) e saída (dependents)."""

    declaration: ResourceDeclaration
    dependencies: FrozenSet[ResourceKey] = frozenset()
    dependents: FrozenSet[ResourceKey] = frozenset()

    @property
    def key(self) -> ResourceKey:
        return self.declaration.key


@dataclass(frozen=True)
class ResourceGraph:
    """
    DAG imutável de recursos declarados.

    `nodes` preserva a ordem de declaração; `topological_order()` fornece
    a ordem determinística de aplicação.
    """

    nodes: Mapping[ResourceKey, ResourceNode] = field(default_factory=dict)

    @property
    def edges(self) -> Set[Edge]:
        return {(dep, node.key) for node in self.nodes.values() for dep in node.dependencies}

    def __contains__(self, key: object) -> bool:
        return key in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, key: ResourceKey) -> ResourceNode:
        return self.nodes[key]

    def keys(self) -> List[ResourceKey]:
        return list(self.nodes)

    def topological_order(self) -> List[ResourceKey]:
        incoming: Dict[ResourceKey, int] = {k: len(n.dependencies) for k, n in self.nodes.items()}
        ready: List[ResourceKey] = sorted(k for k, c in incoming.items() if c == 0)
        order: List[ResourceKey] = []

        while ready:
            key = ready.pop(0)
            order.append(key)
            for child in sorted(self.nodes[key].dependents):
                incoming[child] -= 1
                if incoming[child] == 0:
                    ready.append(child)
                    ready.sort()

        return order

    def dependents_closure(self, key: ResourceKey) -> Set[ResourceKey]:
        """Todos os recursos que dependem, direta ou transitivamente, de `key`."""
        seen: Set[ResourceKey] = set()
        stack = list(self.nodes[key].dependents)
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.nodes[current].dependents)
        return seen


class _Color(Enum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


def _check_references(registry: DeclarationRegistry) -> None:
    for decl in registry.list():
        for attr, refs in sorted(decl.references_by_attribute().items()):
            for ref in refs:
                if ref.key not in registry:
                    raise UnresolvedReferenceError(
                        message=f"{decl.key}.{attr} references unknown resource {ref.key}",
                        details={
                            "resource": str(decl.key),
                            "attribute": attr,
                            "reference": str(ref),
                            "target": str(ref.key),
                        },
                        hint="Declare o recurso referenciado ou corrija a referência.",
                    )


def _find_cycle(dependencies: Mapping[ResourceKey, FrozenSet[ResourceKey]]) -> List[ResourceKey]:
    """DFS em três cores; retorna os recursos do primeiro ciclo encontrado (ou lista vazia)."""
    color: Dict[ResourceKey, _Color] = {k: _Color.UNVISITED for k in dependencies}

    for root in sorted(dependencies):
        if color[root] is not _Color.UNVISITED:
            continue

        path: List[ResourceKey] = [root]
        color[root] = _Color.IN_PROGRESS
        stack = [iter(sorted(dependencies[root]))]

        while stack:
            child = next(stack[-1], None)
            if child is None:
                stack.pop()
                color[path.pop()] = _Color.DONE
                continue

            if color[child] is _Color.IN_PROGRESS:
                return path[path.index(child):]
            if color[child] is _Color.UNVISITED:
                color[child] = _Color.IN_PROGRESS
                path.append(child)
                stack.append(iter(sorted(dependencies[child])))

    return []


def build_graph(declarations: Iterable[ResourceDeclaration]) -> ResourceGraph:
    """
    Constrói o DAG de recursos a partir das declarações.

    Args:
        declarations: Coleção ordenada de declarações.

    Returns:
        ResourceGraph: grafo com arestas dependência → dependente.

    Raises:
        DuplicateResourceError: Par (kind, name) repetido.
        UnresolvedReferenceError: Referência a (kind, name) inexistente.
        CycleError: Ciclo de referências; `details["cycle"]` nomeia cada recurso do ciclo.
    """
    registry = DeclarationRegistry.of(declarations)
    _check_references(registry)

    dependencies: Dict[ResourceKey, FrozenSet[ResourceKey]] = {
        decl.key: decl.dependencies for decl in registry.list()
    }

    cycle = _find_cycle(dependencies)
    if cycle:
        names = [str(k) for k in cycle]
        raise CycleError(
            message="Reference cycle detected: " + " -> ".join(names + [names[0]]),
            details={"cycle": names},
            hint="Remova uma das referências do ciclo; o engine não suporta resolução diferida.",
        )

    dependents: Dict[ResourceKey, Set[ResourceKey]] = {k: set() for k in dependencies}
    for key, deps in dependencies.items():
        for dep in deps:
            dependents[dep].add(key)

    nodes = {
        decl.key: ResourceNode(
            declaration=decl,
            dependencies=dependencies[decl.key],
            dependents=frozenset(dependents[decl.key]),
        )
        for decl in registry.list()
    }
    return ResourceGraph(nodes=nodes)
