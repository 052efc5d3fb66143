"""Retry with exponential backoff for remote catalog and raster calls."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from dagster import get_dagster_logger

from site_suitability.errors import AnalysisCancelled

T = TypeVar("T")

logger = get_dagster_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and delay schedule.

    :param attempts: Total attempts, including the first one
    :param base_delay: Delay in seconds after the first failure
    :param exponential_base: Growth factor between consecutive delays
    """

    attempts: int = 3
    base_delay: float = 2.0
    exponential_base: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-based).

        :param attempt: Attempt number that just failed
        :returns: Delay in seconds
        """
        return self.base_delay * self.exponential_base ** (attempt - 1)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    description: str = "operation",
    cancel_event: threading.Event | None = None,
    sleep: Callable[[float], Any] = time.sleep,
) -> T:
    """Call ``func`` until it succeeds or the attempt budget is spent.

    Exceptions outside ``retry_on`` propagate immediately. Once the budget is
    spent the last exception is re-raised unchanged, so callers can map it to
    their own error type. Setting ``cancel_event`` interrupts the backoff wait
    and stops further attempts.

    :param func: Zero-argument callable to invoke
    :param policy: Retry policy
    :param retry_on: Exception types that trigger another attempt
    :param description: Label used in log messages
    :param cancel_event: Optional cancellation event
    :param sleep: Sleep function used when no cancel event is given
    :returns: Result of ``func``
    :raises AnalysisCancelled: If cancelled before or between attempts
    :raises ValueError: If the policy allows no attempt
    """
    for attempt in range(1, policy.attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelled(f"{description} cancelled before attempt {attempt}")
        try:
            return func()
        except retry_on as e:
            logger.warning(f"{description} attempt {attempt}/{policy.attempts} failed: {e}")
            if attempt == policy.attempts:
                logger.error(f"{description} failed after {policy.attempts} attempts: {e}")
                raise

            delay = policy.delay_for(attempt)
            logger.debug(f"Waiting {delay:.1f}s before retrying {description}")
            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise AnalysisCancelled(f"{description} cancelled during backoff") from e
            else:
                sleep(delay)

    raise ValueError(f"Retry policy for {description} needs at least one attempt, got {policy.attempts}")
