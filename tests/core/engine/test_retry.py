# tests/core/engine/test_retry.py
"""
Testes da política de retry sobre erros transitórios.

Os testes asseguram que:
- o backoff é exponencial e limitado por `max_backoff_seconds`
- apenas AdapterTransientError é repetido
- um erro transitório persistente é escalado para AdapterPermanentError
"""

import pytest

try:
    from atlas_infraflow.core.config.settings import RetrySettings
    from atlas_infraflow.core.engine.retry import NO_RETRY, RetryPolicy, call_with_retry
    from atlas_infraflow.core.exceptions import AdapterPermanentError, AdapterTransientError
except Exception as e:  # noqa: BLE001
    RetryPolicy = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing retry policy. Implement:\n"
            "- src/atlas_infraflow/core/engine/retry.py (RetryPolicy, call_with_retry)\n"
            f"Import error: {_IMPORT_ERR}"
        )


class _Flaky:
    def __init__(self, failures, exc_factory):
        self.failures = failures
        self.exc_factory = exc_factory
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_factory()
        return "ok"


def _throttled():
    return AdapterTransientError(message="throttled", details={"op": "create"})


def test_delay_for_is_exponential_and_capped():
    _require_imports()
    policy = RetryPolicy(max_attempts=6, backoff_seconds=1.0, backoff_multiplier=2.0, max_backoff_seconds=5.0)

    assert [policy.delay_for(a) for a in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_policy_from_settings_and_config():
    _require_imports()
    settings = RetrySettings(max_attempts=4, backoff_seconds=0.5, backoff_multiplier=3.0, max_backoff_seconds=9.0)

    assert RetryPolicy.from_settings(settings) == RetryPolicy(4, 0.5, 3.0, 9.0)
    assert RetryPolicy.from_config({"engine": {"retry": {"max_attempts": 7}}}).max_attempts == 7


def test_transient_errors_are_retried(no_sleep):
    _require_imports()
    fn = _Flaky(2, _throttled)
    retries = []

    result, attempts = call_with_retry(
        fn,
        policy=RetryPolicy(max_attempts=3, backoff_seconds=1.0),
        sleep=no_sleep,
        on_retry=lambda attempt, delay, err: retries.append((attempt, delay, err.message)),
    )

    assert (result, attempts) == ("ok", 3)
    assert no_sleep.delays == [1.0, 2.0]
    assert retries == [(1, 1.0, "throttled"), (2, 2.0, "throttled")]


def test_persistent_transient_error_escalates_to_permanent(no_sleep):
    _require_imports()
    fn = _Flaky(10, _throttled)

    with pytest.raises(AdapterPermanentError) as exc_info:
        call_with_retry(fn, policy=RetryPolicy(max_attempts=3, backoff_seconds=0.0), sleep=no_sleep)

    assert fn.calls == 3
    assert exc_info.value.details == {"op": "create", "attempts": 3, "last_error": "throttled"}
    assert isinstance(exc_info.value.__cause__, AdapterTransientError)


def test_permanent_errors_are_not_retried(no_sleep):
    _require_imports()
    fn = _Flaky(1, lambda: AdapterPermanentError(message="invalid cidr"))

    with pytest.raises(AdapterPermanentError):
        call_with_retry(fn, policy=RetryPolicy(max_attempts=5), sleep=no_sleep)

    assert fn.calls == 1
    assert no_sleep.delays == []


def test_unexpected_exceptions_propagate_without_retry(no_sleep):
    _require_imports()
    fn = _Flaky(1, lambda: KeyError("boom"))

    with pytest.raises(KeyError):
        call_with_retry(fn, policy=RetryPolicy(max_attempts=5), sleep=no_sleep)
    assert fn.calls == 1


def test_no_retry_policy(no_sleep):
    _require_imports()
    with pytest.raises(AdapterPermanentError):
        call_with_retry(_Flaky(1, _throttled), policy=NO_RETRY, sleep=no_sleep)
    assert no_sleep.delays == []
