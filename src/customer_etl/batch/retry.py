"""
Retry policy with bounded exponential backoff and jitter.
"""

import random
import time
from typing import Callable, TypeVar

from customer_etl.core.config import PipelineConfig
from customer_etl.core.exceptions import RetryableLoadError
from customer_etl.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

JitterFunction = Callable[[float], float]

# 2**62 x any sane base delay is far above any cap
MAX_EXPONENT = 62


def no_jitter(delay: float) -> float:
    return delay


def full_jitter(delay: float) -> float:
    """Uniform in [0, delay]."""
    return random.uniform(0, delay)


def equal_jitter(delay: float) -> float:
    """Uniform in [delay/2, delay]."""
    half = delay / 2
    return half + random.uniform(0, half)


class RetryPolicy:
    """
    Reusable retry policy.

    The delay before retry number k (0-based) is
    min(max_delay, base_delay * 2**k) passed through the jitter function.
    Only exceptions listed in `retryable` are retried; anything else
    propagates on the first failure.

    Args:
        max_retries: Retries after the first attempt (total attempts = 1 + max_retries)
        base_delay: Base delay in seconds
        max_delay: Upper bound of any single delay in seconds
        jitter: Function applied to each computed delay
        sleep: Function used to wait (injectable for tests)
        retryable: Exception types that trigger a retry
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 10.0,
        jitter: JitterFunction = equal_jitter,
        sleep: Callable[[float], None] = time.sleep,
        retryable: tuple[type[BaseException], ...] = (RetryableLoadError,),
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if base_delay <= 0 or max_delay <= 0:
            raise ValueError("delays must be positive")
        if max_delay < base_delay:
            raise ValueError(f"max_delay ({max_delay}) must be >= base_delay ({base_delay})")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.sleep = sleep
        self.retryable = retryable

    @classmethod
    def from_config(cls, config: PipelineConfig, **kwargs) -> "RetryPolicy":
        """Build a policy from retry_attempts / backoff_base_ms / backoff_max_ms."""
        return cls(
            max_retries=config.retry_attempts,
            base_delay=config.backoff_base_ms / 1000,
            max_delay=config.backoff_max_ms / 1000,
            **kwargs,
        )

    def compute_delay(self, retry_index: int) -> float:
        """Delay in seconds before retry number retry_index (0-based)."""
        exponent = min(max(retry_index, 0), MAX_EXPONENT)
        delay = min(self.max_delay, self.base_delay * (2 ** exponent))
        return min(self.max_delay, max(0.0, self.jitter(delay)))

    def execute(
        self,
        operation: Callable[[], T],
        on_retry: Callable[[int, BaseException, float], None] | None = None,
    ) -> T:
        """
        Run operation, retrying retryable failures.

        Args:
            operation: Zero-argument callable to run
            on_retry: Called as on_retry(retry_index, error, delay) before each wait

        Returns:
            The operation's result

        Raises:
            The last error once retries are exhausted, or any non-retryable error
        """
        retry_index = 0
        while True:
            try:
                return operation()
            except self.retryable as e:
                if retry_index >= self.max_retries:
                    logger.warning(
                        "Retries exhausted",
                        extra={"max_retries": self.max_retries, "error": str(e)},
                    )
                    raise

                delay = self.compute_delay(retry_index)
                if on_retry is not None:
                    on_retry(retry_index, e, delay)
                self.sleep(delay)
                retry_index += 1
