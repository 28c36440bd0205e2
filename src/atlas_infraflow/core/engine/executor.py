# src/atlas_infraflow/core/engine/executor.py
"""
Executor — aplicação concorrente de um plano aprovado.

Modelo de execução:
    - Um coordenador (thread chamadora) e um pool limitado de workers
      (`ThreadPoolExecutor`, `engine.max_workers`)
    - Um Step só é despachado quando todos os Steps de `depends_on`
      terminaram com sucesso
    - Workers executam a chamada ao Provider Adapter e **retornam** um
      `StepOutcome` via future; nunca levantam e nunca tocam estado
      compartilhado
    - Apenas o coordenador grava no State Store, publica saídas para
      dependentes e atualiza status/manifest

Falhas:
    - Um Step com falha marca toda a sua subárvore de dependentes como
      SKIPPED (`STEP_BLOCKED`); ramos independentes seguem até o fim
    - Nenhum StateRecord já gravado é desfeito (sem rollback)
    - `engine.fail_fast` (default false) interrompe o agendamento na
      primeira falha

Cancelamento:
    - `CancellationToken.cancel()` interrompe o agendamento de Steps ainda
      não iniciados; chamadas em voo terminam naturalmente e são gravadas
    - Steps não iniciados terminam SKIPPED (`RUN_CANCELED`)

Pré-condições (verificadas antes de qualquer chamada remota):
    - o plano foi aceito (`ApprovedPlan`)
    - todo kind do plano possui Provider Adapter
    - o State Store não mudou desde o cálculo do plano
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from atlas_infraflow import __version__
from atlas_infraflow.core.config.hashing import compute_config_hash
from atlas_infraflow.core.config.settings import EngineSettings, resolve_engine_settings
from atlas_infraflow.core.errors import (
    AtlasErrorPayload,
    exception_to_payload,
    run_canceled,
    step_blocked,
)
from atlas_infraflow.core.exceptions import (
    AdapterTransientError,
    EngineConfigurationError,
    EngineExecutionError,
    StalePlanError,
)
from atlas_infraflow.core.model.types import (
    Action,
    DiffEntry,
    ResourceDeclaration,
    ResourceKey,
    StepStatus,
    resolve_value,
)
from atlas_infraflow.core.run_context import RunContext
from atlas_infraflow.core.traceability.manifest import (
    RunManifest,
    add_event,
    create_manifest,
    step_failed,
    step_finished,
    step_skipped,
    step_started,
)
from atlas_infraflow.persistence.state_store import StateRecord, StateStore
from atlas_infraflow.providers.base import ProviderRegistry

from .planner import PlanStep
from .retry import RetryPolicy, call_with_retry
from .review import ApprovedPlan


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CancellationToken:
    """Sinal de cancelamento emitido pelo operador (thread-safe)."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "canceled"

    def cancel(self, reason: str = "canceled") -> None:
        self._reason = reason
        self._event.set()

    @property
    def canceled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason


@dataclass(frozen=True)
class StepOutcome:
    """Mensagem devolvida por um worker ao coordenador."""

    key: ResourceKey
    status: StepStatus
    effective_action: Action
    attempts: int = 0
    record: Optional[StateRecord] = None
    removed: bool = False
    error: Optional[AtlasErrorPayload] = None


@dataclass(frozen=True)
class StepResult:
    """Status terminal de um recurso do plano ao final da run."""

    step_id: str
    key: ResourceKey
    action: Action
    status: StepStatus
    effective_action: Action
    attempts: int = 0
    provider_id: Optional[str] = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "resource": str(self.key),
            "action": self.action.value,
            "effective_action": self.effective_action.value,
            "status": self.status.value,
            "attempts": self.attempts,
            "provider_id": self.provider_id,
            "outputs": dict(self.outputs),
            "error": self.error,
        }


@dataclass(frozen=True)
class RunResult:
    """Resultado agregado de uma run (sucesso parcial é um resultado válido)."""

    run_id: str
    plan_id: str
    steps: Dict[str, StepResult] = field(default_factory=dict)
    canceled: bool = False

    def _with_status(self, status: StepStatus) -> List[str]:
        return [sid for sid, r in self.steps.items() if r.status is status]

    @property
    def succeeded(self) -> List[str]:
        return self._with_status(StepStatus.SUCCEEDED)

    @property
    def failed(self) -> List[str]:
        return self._with_status(StepStatus.FAILED)

    @property
    def skipped(self) -> List[str]:
        return self._with_status(StepStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.skipped

    @property
    def outputs(self) -> Dict[str, Dict[str, Any]]:
        """Saídas resolvidas dos Steps de create/update/replace bem-sucedidos."""
        applied = (Action.CREATE, Action.UPDATE, Action.REPLACE)
        return {
            sid: dict(r.outputs)
            for sid, r in self.steps.items()
            if r.status is StepStatus.SUCCEEDED and r.effective_action in applied
        }

    def status_of(self, key: ResourceKey) -> StepStatus:
        return self.steps[str(key)].status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "plan_id": self.plan_id,
            "canceled": self.canceled,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "steps": {sid: r.to_dict() for sid, r in self.steps.items()},
        }


def _rendered_diff(diff: Mapping[str, DiffEntry]) -> Dict[str, Any]:
    return {attr: {"old": old, "new": new} for attr, (old, new) in sorted(diff.items())}


def _resolved_attributes(
    declaration: ResourceDeclaration,
    outputs_by_key: Mapping[ResourceKey, Mapping[str, Any]],
) -> Dict[str, Any]:
    return {
        attr: resolve_value(value, outputs_by_key)
        for attr, value in declaration.attributes.items()
    }


def _state_commit_error(key: ResourceKey, exc: Exception) -> AtlasErrorPayload:
    wrapped = EngineExecutionError(
        message=f"State commit failed for {key}: {exc}",
        details={"resource": str(key), "phase": "state_commit", "exception_class": exc.__class__.__name__},
        hint="O State Store pode não refletir o recurso remoto; verifique o backend antes de reexecutar.",
    )
    return exception_to_payload(wrapped)


def _reference_drift(
    declaration: ResourceDeclaration,
    resolved: Mapping[str, Any],
    prior: StateRecord,
) -> Dict[str, DiffEntry]:
    """Atributos com referência cujo valor resolvido difere do último aplicado."""
    drift: Dict[str, DiffEntry] = {}
    for attr in sorted(declaration.reference_attributes()):
        old = prior.last_applied_attributes.get(attr)
        if old != resolved[attr]:
            drift[attr] = (old, resolved[attr])
    return drift


class Executor:
    """Coordenador de uma run de apply sobre um `ApprovedPlan`."""

    def __init__(
        self,
        *,
        providers: ProviderRegistry,
        store: StateStore,
        ctx: RunContext,
        settings: Optional[EngineSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.providers = providers
        self.store = store
        self.ctx = ctx
        self.settings = settings if settings is not None else resolve_engine_settings(ctx.config or {})
        self.retry_policy = RetryPolicy.from_settings(self.settings.retry)
        self.sleep = sleep
        self.cancel_token = cancel_token if cancel_token is not None else CancellationToken()
        self.manifest: Optional[RunManifest] = None

    # ------------------------------------------------------------------
    # Pré-condições
    # ------------------------------------------------------------------
    def _check_preconditions(self, approved: Any) -> None:
        if not isinstance(approved, ApprovedPlan):
            raise EngineConfigurationError(
                message="Executor requires an accepted plan",
                details={"received": type(approved).__name__},
                hint="Use accept_plan(plan, approver=...) antes de executar.",
            )
        if approved.plan.plan_id != approved.plan_id:
            raise EngineConfigurationError(
                message="Approved plan does not match the reviewed plan id",
                details={"approved": approved.plan_id, "actual": approved.plan.plan_id},
            )

        self.providers.require_kinds(step.key.kind for step in approved.plan.steps)

        current = self.store.fingerprint()
        if current != approved.plan.state_fingerprint:
            raise StalePlanError(
                message="State Store changed since the plan was computed",
                details={"planned": approved.plan.state_fingerprint, "current": current},
                hint="Gere e revise um novo plano.",
            )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _call(self, step: PlanStep, operation: str, fn: Callable[[], Any]) -> Tuple[Any, int]:
        def on_retry(attempt: int, delay: float, error: AdapterTransientError) -> None:
            self.ctx.log(
                step_id=step.step_id,
                level="warning",
                message=f"transient {operation} failure, retrying",
                attempt=attempt,
                delay_seconds=delay,
                error=error.message,
            )
            self.ctx.add_warning(step_id=step.step_id, message=f"attempt {attempt}: {error.message}")

        self.ctx.log(step_id=step.step_id, level="info", message=f"adapter {operation}")
        return call_with_retry(fn, policy=self.retry_policy, sleep=self.sleep, on_retry=on_retry)

    def _record(
        self,
        decl: ResourceDeclaration,
        attributes: Dict[str, Any],
        provider_id: str,
        outputs: Dict[str, Any],
    ) -> StateRecord:
        return StateRecord(
            kind=decl.kind,
            name=decl.name,
            last_applied_attributes=attributes,
            provider_id=provider_id,
            outputs=outputs,
            dependencies=decl.dependencies,
        )

    def _apply_step(
        self,
        step: PlanStep,
        dep_outputs: Mapping[ResourceKey, Mapping[str, Any]],
    ) -> StepOutcome:
        adapter = self.providers.get(step.key.kind)
        prior = step.prior

        if step.action is Action.DELETE:
            _, attempts = self._call(step, "delete", lambda: adapter.delete(prior.provider_id))
            return StepOutcome(step.key, StepStatus.SUCCEEDED, Action.DELETE, attempts, removed=True)

        if step.action is Action.NOOP and prior is None:
            # alvo de destroy que nunca foi aplicado: nada a remover
            return StepOutcome(step.key, StepStatus.SUCCEEDED, Action.NOOP)

        decl = step.declaration
        attributes = _resolved_attributes(decl, dep_outputs)

        if step.action is Action.CREATE:
            (provider_id, outputs), attempts = self._call(step, "create", lambda: adapter.create(attributes))
            record = self._record(decl, attributes, str(provider_id), dict(outputs or {}))
            return StepOutcome(step.key, StepStatus.SUCCEEDED, Action.CREATE, attempts, record=record)

        if step.action is Action.REPLACE:
            _, deleted = self._call(step, "delete", lambda: adapter.delete(prior.provider_id))
            try:
                (provider_id, outputs), created = self._call(step, "create", lambda: adapter.create(attributes))
            except Exception as e:
                # o recurso antigo já não existe: o registro precisa sair do State Store
                return self._failure(step, e, removed=True)
            record = self._record(decl, attributes, str(provider_id), dict(outputs or {}))
            return StepOutcome(step.key, StepStatus.SUCCEEDED, Action.REPLACE, deleted + created, record=record)

        diff: Dict[str, DiffEntry] = dict(step.diff)
        diff.update(_reference_drift(decl, attributes, prior))

        if not diff:
            # NOOP sem drift: nenhuma chamada remota
            record = None
            if prior.dependencies != decl.dependencies:
                record = self._record(decl, attributes, prior.provider_id, dict(prior.outputs))
            return StepOutcome(step.key, StepStatus.SUCCEEDED, Action.NOOP, record=record)

        returned, attempts = self._call(step, "update", lambda: adapter.update(prior.provider_id, diff))
        outputs = dict(prior.outputs)
        outputs.update(returned or {})
        record = self._record(decl, attributes, prior.provider_id, outputs)
        return StepOutcome(step.key, StepStatus.SUCCEEDED, Action.UPDATE, attempts, record=record)

    def _run_step(
        self,
        step: PlanStep,
        dep_outputs: Mapping[ResourceKey, Mapping[str, Any]],
    ) -> StepOutcome:
        try:
            return self._apply_step(step, dep_outputs)
        except Exception as e:
            return self._failure(step, e)

    def _failure(self, step: PlanStep, exc: Exception, *, removed: bool = False) -> StepOutcome:
        context = {
            "resource": str(step.key),
            "action": step.action.value,
            "diff": _rendered_diff(step.diff),
        }
        attempts = int((getattr(exc, "details", None) or {}).get("attempts", 1))
        return StepOutcome(
            step.key,
            StepStatus.FAILED,
            step.action,
            attempts,
            removed=removed,
            error=exception_to_payload(exc, context=context),
        )

    # ------------------------------------------------------------------
    # Coordenador
    # ------------------------------------------------------------------
    def execute(self, approved: ApprovedPlan) -> RunResult:
        """
        Executa o plano aprovado e retorna o status terminal de cada Step.

        Raises:
            EngineConfigurationError: Plano não aprovado.
            UnknownResourceKindError: Kind sem Provider Adapter.
            StalePlanError: State Store mudou desde o plano.
        """
        self._check_preconditions(approved)
        plan = approved.plan

        manifest = create_manifest(
            run_id=self.ctx.run_id,
            started_at=_now(),
            infraflow_version=__version__,
            config_hash=compute_config_hash(dict(self.ctx.config or {})),
            plan_id=approved.plan_id,
            state_fingerprint=plan.state_fingerprint,
        )
        self.manifest = manifest
        add_event(manifest, event_type="plan_accepted", ts=_now(), payload={"summary": plan.summary()})

        steps: Dict[ResourceKey, PlanStep] = {s.key: s for s in plan.steps}
        order: List[ResourceKey] = [s.key for s in plan.steps]
        status: Dict[ResourceKey, StepStatus] = {k: StepStatus.PENDING for k in order}
        results: Dict[ResourceKey, StepResult] = {}
        published: Dict[ResourceKey, Dict[str, Any]] = {}

        dependents: Dict[ResourceKey, Set[ResourceKey]] = {k: set() for k in order}
        for s in plan.steps:
            for dep in s.depends_on:
                if dep in dependents:
                    dependents[dep].add(s.key)

        def skip(key: ResourceKey, reason: AtlasErrorPayload) -> None:
            step = steps[key]
            status[key] = StepStatus.SKIPPED
            results[key] = StepResult(
                step_id=step.step_id,
                key=key,
                action=step.action,
                status=StepStatus.SKIPPED,
                effective_action=step.action,
                error=reason.to_dict(),
            )
            step_skipped(
                manifest,
                step_id=step.step_id,
                resource=str(key),
                action=step.action.value,
                ts=_now(),
                reason=reason.to_dict(),
            )
            self.ctx.log(step_id=step.step_id, level="warning", message="step skipped", reason=reason.type)

        def block_subtree(failed: ResourceKey) -> None:
            stack = sorted(dependents[failed], reverse=True)
            while stack:
                key = stack.pop()
                if status[key] is not StepStatus.PENDING:
                    continue
                blocked_by = [str(d) for d in steps[key].depends_on if status.get(d) in (StepStatus.FAILED, StepStatus.SKIPPED)]
                skip(key, step_blocked(resource=str(key), blocked_by=blocked_by or [str(failed)]))
                stack.extend(sorted(dependents[key], reverse=True))

        def commit(outcome: StepOutcome) -> None:
            step = steps[outcome.key]
            record = outcome.record
            if outcome.status is StepStatus.SUCCEEDED:
                try:
                    if outcome.removed:
                        self.store.remove(outcome.key)
                    elif record is not None:
                        record = self.store.put(record)
                except Exception as e:
                    outcome = StepOutcome(
                        outcome.key,
                        StepStatus.FAILED,
                        outcome.effective_action,
                        outcome.attempts,
                        error=_state_commit_error(outcome.key, e),
                    )

            if outcome.status is StepStatus.FAILED:
                error = outcome.error.to_dict() if outcome.error is not None else None
                if outcome.removed:
                    try:
                        self.store.remove(outcome.key)
                    except Exception as e:
                        commit_error = _state_commit_error(outcome.key, e).to_dict()
                        if error is None:
                            error = commit_error
                        else:
                            error["details"]["state_commit_error"] = commit_error
                        self.ctx.add_warning(step_id=step.step_id, message=commit_error["message"])
                status[outcome.key] = StepStatus.FAILED
                results[outcome.key] = StepResult(
                    step_id=step.step_id,
                    key=outcome.key,
                    action=step.action,
                    status=StepStatus.FAILED,
                    effective_action=outcome.effective_action,
                    attempts=outcome.attempts,
                    error=error,
                )
                step_failed(manifest, step_id=step.step_id, ts=_now(), error=error or {}, attempts=outcome.attempts)
                self.ctx.log(step_id=step.step_id, level="error", message="step failed", error=error)
                block_subtree(outcome.key)
                return

            if record is None and not outcome.removed:
                record = step.prior
            outputs = record.resolved_outputs() if record is not None and not outcome.removed else {}
            if not outcome.removed:
                published[outcome.key] = outputs

            status[outcome.key] = StepStatus.SUCCEEDED
            results[outcome.key] = StepResult(
                step_id=step.step_id,
                key=outcome.key,
                action=step.action,
                status=StepStatus.SUCCEEDED,
                effective_action=outcome.effective_action,
                attempts=outcome.attempts,
                provider_id=record.provider_id if record is not None else None,
                outputs=outputs,
            )
            step_finished(
                manifest,
                step_id=step.step_id,
                ts=_now(),
                result={
                    "attempts": outcome.attempts,
                    "provider_id": record.provider_id if record is not None else None,
                    "outputs": outputs,
                    "effective_action": outcome.effective_action.value
                    if outcome.effective_action is not step.action
                    else None,
                },
            )
            self.ctx.log(
                step_id=step.step_id,
                level="info",
                message="step succeeded",
                action=outcome.effective_action.value,
            )

        def ready() -> List[ResourceKey]:
            return [
                k for k in order
                if status[k] is StepStatus.PENDING
                and all(status.get(d, StepStatus.SUCCEEDED) is StepStatus.SUCCEEDED for d in steps[k].depends_on)
            ]

        stop_reason: Optional[str] = None
        in_flight: Dict[Future, ResourceKey] = {}
        max_workers = self.settings.max_workers

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="infraflow-step") as pool:
            while True:
                if stop_reason is None and self.cancel_token.canceled:
                    stop_reason = self.cancel_token.reason
                    add_event(manifest, event_type="run_canceled", ts=_now(), payload={"reason": stop_reason})

                if stop_reason is None:
                    for key in ready():
                        if len(in_flight) >= max_workers:
                            break
                        step = steps[key]
                        status[key] = StepStatus.RUNNING
                        step_started(
                            manifest,
                            step_id=step.step_id,
                            resource=str(key),
                            action=step.action.value,
                            ts=_now(),
                        )
                        dep_outputs = {d: published[d] for d in step.depends_on if d in published}
                        in_flight[pool.submit(self._run_step, step, dep_outputs)] = key

                if not in_flight:
                    break

                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: in_flight[f]):
                    in_flight.pop(future)
                    commit(future.result())

                if stop_reason is None and self.settings.fail_fast and any(
                    s is StepStatus.FAILED for s in status.values()
                ):
                    stop_reason = "fail_fast"
                    add_event(manifest, event_type="run_stopped", ts=_now(), payload={"reason": stop_reason})

        for key in order:
            if status[key] is StepStatus.PENDING:
                skip(key, run_canceled(resource=str(key), reason=stop_reason or "unreachable"))

        add_event(
            manifest,
            event_type="run_finished",
            ts=_now(),
            payload={
                "succeeded": sum(1 for s in status.values() if s is StepStatus.SUCCEEDED),
                "failed": sum(1 for s in status.values() if s is StepStatus.FAILED),
                "skipped": sum(1 for s in status.values() if s is StepStatus.SKIPPED),
            },
        )

        return RunResult(
            run_id=self.ctx.run_id,
            plan_id=approved.plan_id,
            steps={str(k): results[k] for k in order},
            canceled=self.cancel_token.canceled,
        )
