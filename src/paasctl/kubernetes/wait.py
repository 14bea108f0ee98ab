"""Bounded polling for cluster conditions.

A condition is a zero-argument callable returning True once satisfied and
False while still pending. Raising from a condition aborts the wait and the
exception propagates unchanged. Conditions must only observe cluster state.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from ..errors import WaitTimeoutError
from ..shared.logging import get_logger

logger = get_logger(__name__)

Condition = Callable[[], bool]


def poll_until(
    interval: float,
    timeout: float,
    condition: Condition,
    description: str = "condition",
) -> int:
    """Evaluate a condition immediately, then every interval, until it holds.

    Args:
        interval: Seconds between evaluations.
        timeout: Wall-clock bound in seconds.
        condition: Predicate to evaluate.
        description: What is being waited for, used in messages.

    Returns:
        Number of evaluations performed.

    Raises:
        WaitTimeoutError: The deadline passed before the condition held.
    """
    start = time.monotonic()
    deadline = start + timeout
    attempts = 0

    while True:
        attempts += 1
        if condition():
            logger.debug(
                "wait satisfied",
                what=description,
                attempts=attempts,
                elapsed=round(time.monotonic() - start, 2),
            )
            return attempts

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise WaitTimeoutError(
                message=f"Timed out after {timeout:g}s waiting for {description}",
                data={"attempts": attempts},
                timeout=timeout,
            )

        # Wait before next attempt, never sleeping past the deadline
        time.sleep(min(interval, remaining))
