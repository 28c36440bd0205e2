# src/atlas_infraflow/core/config/settings.py
"""
Defaults embutidos e leitura tipada das chaves `engine.*`.

Chaves reconhecidas (v1):

    engine:
      max_workers: 4           # Steps em voo simultaneamente
      fail_fast: false         # true → cancela a run na primeira falha
      retry:
        max_attempts: 3
        backoff_seconds: 1.0
        backoff_multiplier: 2.0
        max_backoff_seconds: 30.0
    state:
      path: null               # diretório do State Store em disco; null → em memória

Chaves desconhecidas são preservadas no dicionário de configuração (e no
hash do manifest), mas ignoradas pelo engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import InvalidEngineSettingsError


DEFAULT_CONFIG: Dict[str, Any] = {
    "engine": {
        "max_workers": 4,
        "fail_fast": False,
        "retry": {
            "max_attempts": 3,
            "backoff_seconds": 1.0,
            "backoff_multiplier": 2.0,
            "max_backoff_seconds": 30.0,
        },
    },
    "state": {
        "path": None,
    },
}


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 30.0


@dataclass(frozen=True)
class EngineSettings:
    max_workers: int = 4
    fail_fast: bool = False
    retry: RetrySettings = RetrySettings()


def _section(config: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = config.get(key) or {}
    if not isinstance(value, Mapping):
        raise InvalidEngineSettingsError(f"'{key}' deve ser um mapa, recebido: {type(value).__name__}")
    return value


def _int(section: Mapping[str, Any], key: str, default: int, *, minimum: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidEngineSettingsError(f"'{key}' deve ser inteiro, recebido: {value!r}")
    if value < minimum:
        raise InvalidEngineSettingsError(f"'{key}' deve ser >= {minimum}, recebido: {value}")
    return value


def _float(section: Mapping[str, Any], key: str, default: float, *, minimum: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidEngineSettingsError(f"'{key}' deve ser numérico, recebido: {value!r}")
    if value < minimum:
        raise InvalidEngineSettingsError(f"'{key}' deve ser >= {minimum}, recebido: {value}")
    return float(value)


def resolve_engine_settings(config: Mapping[str, Any]) -> EngineSettings:
    """
    Lê `engine.*` da configuração efetiva.

    Raises:
        InvalidEngineSettingsError: Tipos ou limites inválidos.
    """
    engine = _section(config, "engine")
    retry = _section(engine, "retry")

    fail_fast = engine.get("fail_fast", False)
    if not isinstance(fail_fast, bool):
        raise InvalidEngineSettingsError(f"'fail_fast' deve ser booleano, recebido: {fail_fast!r}")

    return EngineSettings(
        max_workers=_int(engine, "max_workers", 4, minimum=1),
        fail_fast=fail_fast,
        retry=RetrySettings(
            max_attempts=_int(retry, "max_attempts", 3, minimum=1),
            backoff_seconds=_float(retry, "backoff_seconds", 1.0, minimum=0.0),
            backoff_multiplier=_float(retry, "backoff_multiplier", 2.0, minimum=1.0),
            max_backoff_seconds=_float(retry, "max_backoff_seconds", 30.0, minimum=0.0),
        ),
    )


def resolve_state_path(config: Mapping[str, Any]) -> Optional[Path]:
    """
    Lê `state.path`: diretório do State Store em disco, ou None (em memória).

    Raises:
        InvalidEngineSettingsError: Valor que não é string/caminho.
    """
    value = _section(config, "state").get("path")
    if value is None:
        return None
    if not isinstance(value, (str, Path)) or not str(value).strip():
        raise InvalidEngineSettingsError(f"'path' deve ser um caminho não vazio, recebido: {value!r}")
    return Path(value)
