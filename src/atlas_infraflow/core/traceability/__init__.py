# src/atlas_infraflow/core/traceability/__init__.py
"""
Pacote de rastreabilidade (traceability) do Atlas InfraFlow — Run Manifest v1.

API pública exposta:
    - RunManifest       → estrutura canônica do Manifest
    - create_manifest   → criação explícita do Manifest
    - add_event         → registro explícito de eventos no Event Log
    - step_started      → marca início de execução de um Step
    - step_finished     → registra conclusão bem-sucedida de um Step
    - step_failed       → registra falha de um Step
    - step_skipped      → registra Step bloqueado ou cancelado
    - save_manifest     → persistência do Manifest em JSON
    - load_manifest     → restauração determinística do Manifest

Invariantes:
    - O Manifest inicia com `steps` e `events` vazios
    - Eventos nunca são reordenados automaticamente
"""

from .manifest import (
    RunManifest,
    create_manifest,
    add_event,
    step_started,
    step_finished,
    step_failed,
    step_skipped,
    save_manifest,
    load_manifest,
)

__all__ = [
    "RunManifest",
    "create_manifest",
    "add_event",
    "step_started",
    "step_finished",
    "step_failed",
    "step_skipped",
    "save_manifest",
    "load_manifest",
]
