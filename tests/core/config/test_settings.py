# tests/core/config/test_settings.py
"""
Testes da leitura tipada de `engine.*` e `state.path` (resolve_engine_settings, resolve_state_path).
"""

from pathlib import Path

import pytest

try:
    from atlas_infraflow.core.config.errors import ConfigError, InvalidEngineSettingsError
    from atlas_infraflow.core.config.settings import (
        DEFAULT_CONFIG,
        EngineSettings,
        RetrySettings,
        resolve_engine_settings,
        resolve_state_path,
    )
except Exception as e:  # noqa: BLE001
    resolve_engine_settings = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing engine settings module. Implement:\n"
            "- src/atlas_infraflow/core/config/settings.py (DEFAULT_CONFIG, EngineSettings, resolve_engine_settings)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def test_defaults_resolve_to_documented_values():
    _require_imports()
    settings = resolve_engine_settings(DEFAULT_CONFIG)

    assert settings == EngineSettings(
        max_workers=4,
        fail_fast=False,
        retry=RetrySettings(max_attempts=3, backoff_seconds=1.0, backoff_multiplier=2.0, max_backoff_seconds=30.0),
    )


def test_empty_config_uses_defaults():
    _require_imports()
    assert resolve_engine_settings({}) == EngineSettings()


def test_overrides_are_read():
    _require_imports()
    settings = resolve_engine_settings(
        {"engine": {"max_workers": 1, "fail_fast": True, "retry": {"max_attempts": 1, "backoff_seconds": 0}}}
    )

    assert settings.max_workers == 1
    assert settings.fail_fast is True
    assert settings.retry.max_attempts == 1
    assert settings.retry.backoff_seconds == 0.0
    assert isinstance(settings.retry.backoff_seconds, float)


@pytest.mark.parametrize(
    "engine",
    [
        {"max_workers": 0},
        {"max_workers": "4"},
        {"max_workers": True},
        {"fail_fast": "yes"},
        {"retry": {"max_attempts": 0}},
        {"retry": {"backoff_seconds": -1}},
        {"retry": {"backoff_multiplier": 0.5}},
        {"retry": "aggressive"},
    ],
)
def test_invalid_values_raise(engine):
    """Valores inválidos são erro de configuração, nunca corrigidos silenciosamente."""
    _require_imports()
    with pytest.raises(InvalidEngineSettingsError) as exc_info:
        resolve_engine_settings({"engine": engine})

    assert isinstance(exc_info.value, ConfigError)


def test_state_path_is_optional():
    _require_imports()
    assert resolve_state_path(DEFAULT_CONFIG) is None
    assert resolve_state_path({}) is None
    assert resolve_state_path({"state": {"path": "/var/lib/infraflow"}}) == Path("/var/lib/infraflow")


@pytest.mark.parametrize("state", [{"path": 42}, {"path": "  "}, "state-dir"])
def test_invalid_state_path_raises(state):
    _require_imports()
    with pytest.raises(InvalidEngineSettingsError):
        resolve_state_path({"state": state})
