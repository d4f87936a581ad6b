"""Retry with exponential backoff and per-operation resilience metrics."""
import asyncio
import logging
import random
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry mechanisms."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    exceptions: tuple = (Exception,)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given zero-based failed attempt."""
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        # Add jitter to avoid thundering herd
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay


async def retry_with_backoff(
    func: Callable,
    *args,
    config: RetryConfig = None,
    operation: Optional[str] = None,
    **kwargs
) -> Any:
    """Execute function with exponential backoff retry.

    ``func`` may be sync or async. When ``operation`` is given, successes,
    failures and retries are recorded on the global ``resilience_manager``.
    The last exception is re-raised once every attempt has failed.
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            result = func(*args, **kwargs)
            if asyncio.iscoroutine(result):
                result = await result
        except config.exceptions as e:
            if attempt == config.max_attempts - 1:
                # Last attempt failed
                logger.error(f"All {config.max_attempts} retry attempts failed. Last exception: {str(e)}")
                if operation:
                    resilience_manager.record_failure(operation)
                raise

            delay = config.delay_for(attempt)
            logger.warning(f"Attempt {attempt + 1}/{config.max_attempts} failed: {str(e)}. Retrying in {delay:.2f}s")
            if operation:
                resilience_manager.record_retry(operation)
            await asyncio.sleep(delay)
        else:
            if operation:
                resilience_manager.record_success(operation)
            return result

    raise ValueError("RetryConfig.max_attempts must be at least 1")


class ResilienceManager:
    """Success / failure / retry counters per named operation."""

    def __init__(self):
        self.metrics: Dict[str, Dict[str, int]] = {}
        self._lock = threading.Lock()

    def _bump(self, operation: str, field: str):
        with self._lock:
            if operation not in self.metrics:
                self.metrics[operation] = {"successes": 0, "failures": 0, "retries": 0}
            self.metrics[operation][field] += 1

    def record_success(self, operation: str):
        """Record a successful operation."""
        self._bump(operation, "successes")

    def record_failure(self, operation: str):
        """Record a failed operation."""
        self._bump(operation, "failures")

    def record_retry(self, operation: str):
        """Record a retry attempt."""
        self._bump(operation, "retries")

    def reset(self):
        with self._lock:
            self.metrics.clear()

    def get_health_status(self) -> Dict[str, Any]:
        """Get metrics and an overall health verdict."""
        with self._lock:
            metrics = {name: dict(values) for name, values in self.metrics.items()}

        status = {
            "metrics": metrics,
            "overall_health": "healthy"
        }

        critical_failures = 0
        for values in metrics.values():
            if values["failures"] > values["successes"] * 0.5:  # More than 50% failure rate
                critical_failures += 1

        if critical_failures > len(metrics) * 0.3:  # More than 30% of operations failing
            status["overall_health"] = "unhealthy"
        elif critical_failures > 0:
            status["overall_health"] = "degraded"

        return status


# Global resilience manager instance
resilience_manager = ResilienceManager()
