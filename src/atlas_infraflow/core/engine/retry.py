# src/atlas_infraflow/core/engine/retry.py
"""
Política de retry sobre erros transitórios de Provider Adapters.

Somente `AdapterTransientError` é elegível para retry, com backoff
exponencial limitado. Esgotadas as tentativas, o erro é escalado para
`AdapterPermanentError`. Erros permanentes (e qualquer exceção fora da
hierarquia de adapter) nunca são repetidos.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple, TypeVar

from atlas_infraflow.core.config.settings import RetrySettings, resolve_engine_settings
from atlas_infraflow.core.exceptions import AdapterPermanentError, AdapterTransientError


T = TypeVar("T")

OnRetry = Callable[[int, float, AdapterTransientError], None]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Espera após a tentativa `attempt` (1-based) ter falhado."""
        delay = self.backoff_seconds * (self.backoff_multiplier ** max(0, attempt - 1))
        return min(self.max_backoff_seconds, delay)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            backoff_seconds=settings.backoff_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_backoff_seconds=settings.max_backoff_seconds,
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "RetryPolicy":
        return cls.from_settings(resolve_engine_settings(config).retry)


NO_RETRY = RetryPolicy(max_attempts=1, backoff_seconds=0.0)


def call_with_retry(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[OnRetry] = None,
) -> Tuple[T, int]:
    """
    Executa `fn` aplicando a política sobre erros transitórios.

    Returns:
        (resultado, número de tentativas)

    Raises:
        AdapterPermanentError: Erro permanente original, ou transitório
            persistente após `max_attempts`.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn(), attempt
        except AdapterTransientError as e:
            if attempt >= policy.max_attempts:
                details = dict(e.details or {})
                details.update({"attempts": attempt, "last_error": e.message})
                raise AdapterPermanentError(
                    message=f"Transient failure persisted after {attempt} attempt(s): {e.message}",
                    details=details,
                    hint=e.hint or "Verifique limites/throttling do provider e reexecute.",
                ) from e
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, delay, e)
            sleep(delay)
