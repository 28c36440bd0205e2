# src/atlas_infraflow/core/engine/__init__.py
"""
Engine do Atlas InfraFlow.

Este pacote contém a implementação responsável por **planejar** e
**aplicar** reconciliações entre declarações de recursos e o State Store.

Componentes principais:
    - planner  → classificação Create/Update/Replace/Delete/NoOp e ordem do plano
    - review   → relatório do plano e aceite explícito do operador
    - retry    → política de retry sobre erros transitórios de adapter
    - executor → execução concorrente com isolamento de falhas por subárvore
    - engine   → fachada que encadeia as fases

Invariantes:
    - Steps só são executados após suas dependências terem sucesso
    - Cada Step é executado no máximo uma vez por run
    - Todo recurso do plano termina a run com status terminal
"""

from .planner import Plan, PlanStep, build_plan, literal_diff
from .review import ApprovedPlan, accept_plan, auto_approve, load_plan_report, save_plan_report
from .retry import NO_RETRY, RetryPolicy, call_with_retry
from .executor import CancellationToken, Executor, RunResult, StepOutcome, StepResult
from .engine import Engine

__all__ = [
    "Plan",
    "PlanStep",
    "build_plan",
    "literal_diff",
    "ApprovedPlan",
    "accept_plan",
    "auto_approve",
    "load_plan_report",
    "save_plan_report",
    "NO_RETRY",
    "RetryPolicy",
    "call_with_retry",
    "CancellationToken",
    "Executor",
    "RunResult",
    "StepOutcome",
    "StepResult",
    "Engine",
]
