"""
Atlas InfraFlow — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do Atlas InfraFlow.
Erros são considerados artefatos de domínio e fazem parte do contrato operacional
do sistema, devendo ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

Um erro de Step sempre identifica o recurso afetado (kind, name) e o diff
que estava sendo aplicado, para que o operador saiba exatamente o que
precisa de atenção antes de reexecutar.

Nenhuma decisão implícita é permitida.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .exceptions import (
    AdapterPermanentError,
    AdapterTransientError,
    AtlasException,
    ConfigurationError,
)


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AtlasErrorPayload:
    """
    Payload canônico de erro do Atlas InfraFlow.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    - decision_required: indica se a execução está bloqueada aguardando decisão humana
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None
    decision_required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Configuração / Grafo
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
GRAPH_CYCLE = "GRAPH_CYCLE"
UNRESOLVED_REFERENCE = "UNRESOLVED_REFERENCE"
PLAN_CONFLICT = "PLAN_CONFLICT"
PLAN_REJECTED = "PLAN_REJECTED"
UNKNOWN_RESOURCE_KIND = "UNKNOWN_RESOURCE_KIND"
STALE_PLAN = "STALE_PLAN"

# Provider Adapter
ADAPTER_TRANSIENT = "ADAPTER_TRANSIENT"
ADAPTER_PERMANENT = "ADAPTER_PERMANENT"

# Engine / Execução
STEP_BLOCKED = "STEP_BLOCKED"
RUN_CANCELED = "RUN_CANCELED"
ENGINE_EXECUTION_ERROR = "ENGINE_EXECUTION_ERROR"
ENGINE_CONFIGURATION_ERROR = "ENGINE_CONFIGURATION_ERROR"

_TYPE_BY_EXCEPTION = {
    "CycleError": GRAPH_CYCLE,
    "UnresolvedReferenceError": UNRESOLVED_REFERENCE,
    "PlanConflictError": PLAN_CONFLICT,
    "PlanRejected": PLAN_REJECTED,
    "UnknownResourceKindError": UNKNOWN_RESOURCE_KIND,
    "StalePlanError": STALE_PLAN,
    "EngineConfigurationError": ENGINE_CONFIGURATION_ERROR,
}


def exception_to_payload(exc: BaseException, *, context: Optional[Dict[str, Any]] = None) -> AtlasErrorPayload:
    """Converte exceções em AtlasErrorPayload (serializável, acionável).

    Regras:
    - AtlasException: já vem com message/details/hint/decision_required.
    - Outras exceções: encapsular como ENGINE_EXECUTION_ERROR sem expor stack trace.
    - `context` (ex.: recurso e diff) é mesclado em `details`.
    """
    extra = dict(context or {})

    if isinstance(exc, AtlasException):
        if isinstance(exc, AdapterTransientError):
            code = ADAPTER_TRANSIENT
        elif isinstance(exc, AdapterPermanentError):
            code = ADAPTER_PERMANENT
        else:
            code = _TYPE_BY_EXCEPTION.get(exc.__class__.__name__)
            if code is None:
                code = CONFIGURATION_ERROR if isinstance(exc, ConfigurationError) else ENGINE_EXECUTION_ERROR
        details = dict(exc.details or {})
        details.update(extra)
        return AtlasErrorPayload(
            type=code,
            message=str(exc) or "Execution error",
            details=details,
            hint=exc.hint,
            decision_required=bool(exc.decision_required),
        )

    details = {"exception_class": exc.__class__.__name__}
    details.update(extra)
    return AtlasErrorPayload(
        type=ENGINE_EXECUTION_ERROR,
        message=str(exc) or "Unexpected error during execution",
        details=details,
        hint="Verifique o Provider Adapter do recurso; nenhum fallback é aplicado automaticamente.",
        decision_required=False,
    )


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def step_blocked(
    *,
    resource: str,
    blocked_by: List[str],
    hint: str = "Corrija a falha do recurso bloqueante e reexecute; este recurso será tentado novamente.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=STEP_BLOCKED,
        message="Step skipped because a dependency did not succeed",
        details={
            "resource": resource,
            "blocked_by": sorted(blocked_by),
        },
        hint=hint,
        decision_required=False,
    )


def run_canceled(
    *,
    resource: str,
    reason: str = "canceled",
    hint: str = "Reexecute o plan/apply; Steps concluídos já estão registrados no State Store.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=RUN_CANCELED,
        message="Step not started because scheduling was stopped",
        details={
            "resource": resource,
            "reason": reason,
        },
        hint=hint,
        decision_required=False,
    )
