# src/atlas_infraflow/core/traceability/manifest.py
"""
Run Manifest v1 — rastreabilidade forense de runs de apply.

Este módulo define a estrutura e as operações canônicas do Manifest,
o artefato central de auditoria de uma execução do Atlas InfraFlow.

O Manifest consolida, de forma determinística e auditável:
    - metadados da execução (run_id, started_at, versão)
    - identidade das entradas (config_hash, plan_id, state_fingerprint)
    - estado incremental de cada Step do plano
    - Event Log ordenado de eventos explícitos

Princípios fundamentais:
    - Nenhum evento é emitido implicitamente
    - Toda mutação ocorre por chamadas explícitas da API
    - A ordem do Event Log reflete a ordem em que o coordenador
      observou as transições (não a ordem de término nos workers)
    - O Manifest é serializável e reconstruível (round-trip)

Invariantes:
    - `events` é sempre uma lista ordenada
    - `steps` é sempre um dicionário indexado por step_id
    - Todo timestamp é ISO 8601 em UTC

Limites explícitos:
    - Não executa Steps
    - Não decide políticas de execução (fail-fast, skip, retry)
    - Não é thread-safe: apenas o coordenador do Executor o atualiza
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    # timestamps naive são assumidos como UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class RunManifest:
    """
    Manifest v1 — registro forense de uma run de apply.

    Campos principais:
        - run: metadados da execução (run_id, started_at, infraflow_version)
        - inputs: config_hash, plan_id e state_fingerprint
        - steps: estado incremental de cada Step (por step_id)
        - events: Event Log ordenado
    """

    run: Dict[str, Any]
    inputs: Dict[str, Any]
    steps: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "steps": {k: dict(v) for k, v in self.steps.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunManifest":
        """Reconstrução permissiva: campos ausentes viram estruturas vazias."""
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            steps={k: dict(v) for k, v in (data.get("steps", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )

    def step_status(self, step_id: str) -> Optional[str]:
        return self.steps.get(step_id, {}).get("status")


def create_manifest(
    *,
    run_id: str,
    started_at: datetime,
    infraflow_version: str,
    config_hash: str,
    plan_id: str,
    state_fingerprint: str,
) -> RunManifest:
    """
    Cria o Manifest inicial de uma run.

    ⚠️ Importante: esta função **não emite eventos implicitamente**.
    O Event Log inicia vazio e só é preenchido por chamadas explícitas
    a `add_event` e às funções `step_*`.

    Args:
        run_id: Identificador único da execução.
        started_at: Timestamp de início da execução.
        infraflow_version: Versão do Atlas InfraFlow utilizada.
        config_hash: Hash da configuração efetiva.
        plan_id: Identidade do plano aprovado em execução.
        state_fingerprint: Fingerprint do State Store sobre o qual o plano foi computado.

    Returns:
        RunManifest: Manifest com `steps` e `events` vazios.
    """
    return RunManifest(
        run={
            "run_id": run_id,
            "started_at": _iso(started_at),
            "infraflow_version": infraflow_version,
        },
        inputs={
            "config_hash": config_hash,
            "plan_id": plan_id,
            "state_fingerprint": state_fingerprint,
        },
        steps={},
        events=[],
    )


def add_event(
    manifest: RunManifest,
    *,
    event_type: str,
    ts: datetime,
    step_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Adiciona um evento explícito ao Event Log.

    Cada chamada adiciona exatamente um evento; eventos não são
    reordenados nem deduplicados.
    """
    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if step_id is not None:
        ev["step_id"] = step_id
    if payload is not None:
        ev["payload"] = payload
    manifest.events.append(ev)


def step_started(
    manifest: RunManifest,
    *,
    step_id: str,
    resource: str,
    action: str,
    ts: datetime,
) -> None:
    """Marca o Step como `running` e registra `step_started`."""
    manifest.steps.setdefault(step_id, {})
    manifest.steps[step_id].update(
        {
            "step_id": step_id,
            "resource": resource,
            "action": action,
            "status": "running",
            "started_at": _iso(ts),
        }
    )
    add_event(
        manifest,
        event_type="step_started",
        ts=ts,
        step_id=step_id,
        payload={"resource": resource, "action": action},
    )


def _duration(step: Dict[str, Any], ts: datetime) -> int:
    started_iso = step.get("started_at")
    if not started_iso:
        return 0
    try:
        started_dt = datetime.fromisoformat(started_iso)
    except ValueError:
        return 0
    return _ms_between(started_dt, ts)


def step_finished(
    manifest: RunManifest,
    *,
    step_id: str,
    ts: datetime,
    result: Dict[str, Any],
) -> None:
    """
    Registra a conclusão bem-sucedida de um Step.

    `result` pode conter `status` (default `"succeeded"`), `attempts`,
    `provider_id`, `outputs` e `effective_action` (quando um NoOp foi
    promovido a Update por drift de referência).
    """
    s = manifest.steps.setdefault(step_id, {"step_id": step_id})
    status = result.get("status", "succeeded")
    s.update(
        {
            "status": status,
            "finished_at": _iso(ts),
            "duration_ms": _duration(s, ts),
            "attempts": result.get("attempts", 0),
            "provider_id": result.get("provider_id"),
            "outputs": dict(result.get("outputs", {}) or {}),
        }
    )
    if result.get("effective_action"):
        s["effective_action"] = result["effective_action"]

    add_event(
        manifest,
        event_type="step_finished",
        ts=ts,
        step_id=step_id,
        payload={"status": status, "duration_ms": s["duration_ms"]},
    )


def step_failed(
    manifest: RunManifest,
    *,
    step_id: str,
    ts: datetime,
    error: Dict[str, Any],
    attempts: int = 0,
) -> None:
    """Registra a falha de um Step; `error` é um `AtlasErrorPayload` serializado."""
    s = manifest.steps.setdefault(step_id, {"step_id": step_id})
    s.update(
        {
            "status": "failed",
            "finished_at": _iso(ts),
            "duration_ms": _duration(s, ts),
            "attempts": attempts,
            "error": error,
        }
    )
    add_event(manifest, event_type="step_failed", ts=ts, step_id=step_id, payload={"error": error})


def step_skipped(
    manifest: RunManifest,
    *,
    step_id: str,
    resource: str,
    action: str,
    ts: datetime,
    reason: Dict[str, Any],
) -> None:
    """Registra um Step que nunca foi despachado (bloqueado ou cancelado)."""
    s = manifest.steps.setdefault(step_id, {"step_id": step_id})
    s.update(
        {
            "resource": resource,
            "action": action,
            "status": "skipped",
            "finished_at": _iso(ts),
            "reason": reason,
        }
    )
    add_event(manifest, event_type="step_skipped", ts=ts, step_id=step_id, payload={"reason": reason})


def save_manifest(manifest: Union[RunManifest, Dict[str, Any]], path: Path) -> None:
    """
    Persiste o Manifest em JSON determinístico (`sort_keys=True`).

    Diretórios intermediários são criados automaticamente.
    """
    data = manifest.to_dict() if isinstance(manifest, RunManifest) else manifest
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")


def load_manifest(path: Path) -> RunManifest:
    """Restaura um Manifest salvo por `save_manifest` (propaga erros de I/O e JSON)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return RunManifest.from_dict(data)
