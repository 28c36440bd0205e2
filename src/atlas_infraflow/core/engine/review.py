# src/atlas_infraflow/core/engine/review.py
"""
Revisão e aceite explícito do plano.

A execução nunca começa sem que o relatório do plano tenha sido aceito
por um aprovador (operador humano, pipeline de CI, teste). O aceite
produz um `ApprovedPlan`, o único tipo que o Executor aceita.

Decisões arquiteturais:
    - O aprovador recebe apenas o relatório serializável (`Plan.report()`)
    - Recusa levanta `PlanRejected` e nada é mutado
    - O `plan_id` aprovado fica congelado no `ApprovedPlan`
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Union

from atlas_infraflow.core.exceptions import PlanRejected

from .planner import Plan


Approver = Callable[[Dict[str, Any]], bool]


@dataclass(frozen=True)
class ApprovedPlan:
    plan: Plan
    plan_id: str
    approved_at: str


def auto_approve(report: Dict[str, Any]) -> bool:
    """Aprovador não interativo: aceita qualquer plano."""
    return True


def accept_plan(plan: Plan, *, approver: Approver) -> ApprovedPlan:
    """
    Submete o relatório do plano ao aprovador.

    Raises:
        PlanRejected: O aprovador recusou o plano.
    """
    report = plan.report()
    if not approver(report):
        raise PlanRejected(
            message="Plan was rejected by the operator",
            details={"plan_id": report["plan_id"], "summary": report["summary"]},
            hint="Revise as declarações e gere um novo plano.",
            decision_required=True,
        )
    return ApprovedPlan(
        plan=plan,
        plan_id=report["plan_id"],
        approved_at=datetime.now(timezone.utc).isoformat(),
    )


def save_plan_report(plan: Plan, path: Union[str, Path]) -> Path:
    """Persiste o relatório do plano em JSON determinístico."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(plan.report(), ensure_ascii=False, indent=2, sort_keys=True, default=str),
        encoding="utf-8",
    )
    return path


def load_plan_report(path: Union[str, Path]) -> Dict[str, Any]:
    return json.loads(Path(path).read_text(encoding="utf-8"))
