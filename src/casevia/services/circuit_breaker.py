"""Circuit breakers for outbound provider calls.

Each provider (transcription, language model) gets its own breaker so that an
outage on one side does not reject calls to the other. The breaker state itself
is kept by the ``circuitbreaker`` package; this module adds a per-call timeout,
statistics for the health endpoint, and translation of breaker errors into the
application error taxonomy.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from circuitbreaker import CircuitBreaker, CircuitBreakerError

from casevia.core.errors import PipelineTimeoutError, UpstreamError
from casevia.core.settings import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    name: str
    failure_threshold: int = 5  # Number of failures before opening
    recovery_timeout: float = 60.0  # Seconds to wait before trying half-open
    timeout: float = 30.0  # Per-call timeout in seconds
    expected_exception: type[Exception] = Exception


@dataclass
class CircuitBreakerStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    last_error: str | None = field(default=None, repr=False)

    def record_success(self) -> None:
        self.total_requests += 1
        self.successful_requests += 1
        self.last_success_time = time.time()

    def record_failure(self, error: BaseException) -> None:
        self.total_requests += 1
        self.failed_requests += 1
        self.last_failure_time = time.time()
        self.last_error = f"{type(error).__name__}: {error}"

    def get_success_rate(self) -> float:
        if self.total_requests == 0:
            return 1.0
        return self.successful_requests / self.total_requests

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "rejected_requests": self.rejected_requests,
            "success_rate": self.get_success_rate(),
            "last_failure_time": self.last_failure_time,
            "last_success_time": self.last_success_time,
            "last_error": self.last_error,
        }


class ProviderCircuitBreaker:
    """Circuit breaker plus timeout around one upstream provider."""

    def __init__(self, config: CircuitBreakerConfig):
        self.config = config
        self.stats = CircuitBreakerStats()
        self._breaker = CircuitBreaker(
            failure_threshold=config.failure_threshold,
            recovery_timeout=config.recovery_timeout,
            expected_exception=config.expected_exception,
            name=config.name,
        )

    @property
    def state(self) -> str:
        return str(self._breaker.state)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` under the breaker, raising application errors on rejection or timeout."""

        async def _guarded() -> T:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.timeout)

        try:
            # call_async only records outcomes; refusing while open is up to the caller.
            if self._breaker.opened:
                raise CircuitBreakerError(self._breaker)
            result = await self._breaker.call_async(_guarded)
        except CircuitBreakerError as e:
            self.stats.rejected_requests += 1
            logger.warning(f"Circuit {self.config.name} is open; rejecting call")
            raise UpstreamError(
                f"{self.config.name} temporarily unavailable (circuit open)",
                provider=self.config.name,
            ) from e
        except TimeoutError as e:
            self.stats.record_failure(e)
            raise PipelineTimeoutError(
                f"{self.config.name} call timed out after {self.config.timeout}s",
                details={"provider": self.config.name},
            ) from e
        except Exception as e:
            self.stats.record_failure(e)
            raise

        self.stats.record_success()
        return result

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "timeout": self.config.timeout,
            },
            "stats": self.stats.to_dict(),
        }


# Global circuit breaker instances
_assemblyai_circuit_breaker: ProviderCircuitBreaker | None = None
_llm_circuit_breaker: ProviderCircuitBreaker | None = None


def get_assemblyai_circuit_breaker() -> ProviderCircuitBreaker:
    global _assemblyai_circuit_breaker
    if _assemblyai_circuit_breaker is None:
        settings = get_settings()
        _assemblyai_circuit_breaker = ProviderCircuitBreaker(
            CircuitBreakerConfig(
                name="assemblyai",
                failure_threshold=5,
                recovery_timeout=60.0,
                timeout=settings.assemblyai_timeout,
            )
        )
    return _assemblyai_circuit_breaker


def get_llm_circuit_breaker() -> ProviderCircuitBreaker:
    global _llm_circuit_breaker
    if _llm_circuit_breaker is None:
        settings = get_settings()
        _llm_circuit_breaker = ProviderCircuitBreaker(
            CircuitBreakerConfig(
                name="llm",
                failure_threshold=3,  # completions are slow; fail fast once the model is down
                recovery_timeout=120.0,
                timeout=settings.llm_timeout,
            )
        )
    return _llm_circuit_breaker


def all_breaker_stats() -> dict[str, dict[str, Any]]:
    return {
        "assemblyai": get_assemblyai_circuit_breaker().get_stats(),
        "llm": get_llm_circuit_breaker().get_stats(),
    }


class CircuitBreakerProtectedLM:
    """DSPy LM wrapper with circuit breaker protection."""

    def __init__(
        self,
        model: str,
        api_base: str | None = None,
        circuit_breaker: ProviderCircuitBreaker | None = None,
        **kwargs: Any
    ):
        self.model = model
        self.api_base = api_base
        self.circuit_breaker = circuit_breaker or get_llm_circuit_breaker()
        self.kwargs = kwargs

        try:
            import dspy
            if api_base:
                self._lm = dspy.LM(model=model, api_base=api_base, **kwargs)
            else:
                self._lm = dspy.LM(model=model, **kwargs)
        except Exception as e:
            logger.error(f"Failed to create DSPy LM: {e}")
            raise

    async def __call__(
        self,
        prompt: str | None = None,
        messages: list[dict[str, str]] | None = None,
        **kwargs: Any
    ) -> Any:
        """Execute LLM call with circuit breaker protection."""
        async def _call_lm() -> Any:
            # dspy.LM is synchronous
            return await asyncio.to_thread(self._lm, prompt, messages=messages, **kwargs)

        return await self.circuit_breaker.call(_call_lm)

    def __getattr__(self, name: str) -> Any:
        """Delegate other attributes to the underlying LM."""
        return getattr(self._lm, name)
