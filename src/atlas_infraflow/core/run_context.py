# src/atlas_infraflow/core/run_context.py
"""
RunContext — Contexto canônico de execução do Atlas InfraFlow.

Este módulo define o **RunContext**, a estrutura compartilhada por uma
run de apply: coordenador e workers registram nele eventos estruturados
e warnings não fatais associados a Steps.

Princípios fundamentais:
- Isolamento por execução (cada run possui seu próprio contexto)
- Thread-safe: workers registram eventos concorrentemente
- Nenhum Step acessa estado global para comunicação indireta; valores
  de referência circulam apenas via State Store/outputs publicados
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List


@dataclass
class RunContext:
    """
    Contexto de execução compartilhado de uma run.

    Campos canônicos:
    - run_id: identificador único da execução
    - created_at: timestamp UTC de criação do contexto
    - config: configuração efetiva (defaults + local deep-merge)
    - meta: metadados de execução (ex.: plan_id, state_dir)
    - warnings: warnings por step_id
    - events: log estruturado de eventos
    """

    run_id: str
    created_at: str
    config: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)

    warnings: Dict[str, List[str]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, step_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "step_id": step_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        with self._lock:
            self.events.append(event)

    def add_warning(self, *, step_id: str, message: str) -> None:
        with self._lock:
            self.warnings.setdefault(step_id, []).append(message)

    def events_for(self, step_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [e for e in self.events if e.get("step_id") == step_id]
