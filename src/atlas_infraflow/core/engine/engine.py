# src/atlas_infraflow/core/engine/engine.py
"""
Engine do Atlas InfraFlow (graph builder + planner + executor).

Fachada fina que encadeia as fases de uma reconciliação, passando o
handle explícito do State Store para o planner e para o executor:

    declarações → build_graph → build_plan → accept_plan → Executor.execute

Cada fase continua disponível isoladamente; o Engine não guarda estado
entre runs além do último Manifest produzido.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Union

from atlas_infraflow.core.graph.builder import ResourceGraph, build_graph
from atlas_infraflow.core.model.types import ResourceDeclaration, ResourceKey
from atlas_infraflow.core.run_context import RunContext
from atlas_infraflow.core.traceability.manifest import RunManifest, save_manifest
from atlas_infraflow.persistence.state_store import StateStore
from atlas_infraflow.providers.base import ProviderRegistry

from .executor import CancellationToken, Executor, RunResult
from .planner import Plan, build_plan
from .review import Approver, accept_plan


class Engine:
    """Engine canônico do Atlas InfraFlow."""

    def __init__(
        self,
        *,
        declarations: Sequence[ResourceDeclaration],
        providers: ProviderRegistry,
        ctx: RunContext,
        store: Optional[StateStore] = None,
    ):
        self.declarations = list(declarations)
        # sem handle explícito, o Store vem de `state.path` na configuração da run
        self.store = store if store is not None else StateStore.from_config(ctx.config or {})
        self.providers = providers
        self.ctx = ctx
        self.manifest: Optional[RunManifest] = None
        self._graph: Optional[ResourceGraph] = None

    def graph(self) -> ResourceGraph:
        if self._graph is None:
            self._graph = build_graph(self.declarations)
        return self._graph

    def plan(self, *, destroy: Iterable[ResourceKey] = ()) -> Plan:
        return build_plan(self.graph(), self.store, providers=self.providers, destroy=destroy)

    def apply(
        self,
        plan: Plan,
        *,
        approver: Approver,
        cancel_token: Optional[CancellationToken] = None,
        sleep: Optional[Callable[[float], None]] = None,
        manifest_path: Optional[Union[str, Path]] = None,
    ) -> RunResult:
        """
        Submete o plano ao aprovador e, se aceito, executa-o.

        Raises:
            PlanRejected: O aprovador recusou o plano (nada é executado).
            StalePlanError: O State Store mudou desde o plano.
            UnknownResourceKindError: Kind sem Provider Adapter.
        """
        approved = accept_plan(plan, approver=approver)

        kwargs = {"cancel_token": cancel_token}
        if sleep is not None:
            kwargs["sleep"] = sleep
        executor = Executor(providers=self.providers, store=self.store, ctx=self.ctx, **kwargs)

        try:
            return executor.execute(approved)
        finally:
            self.manifest = executor.manifest
            if manifest_path is not None and self.manifest is not None:
                save_manifest(self.manifest, Path(manifest_path))
