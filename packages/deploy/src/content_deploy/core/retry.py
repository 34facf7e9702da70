from __future__ import annotations

from typing import Any, Callable

import structlog
from tenacity import Retrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

log = structlog.get_logger(__name__)


class DeterministicExponentialBackoff(wait_base):
    def __init__(self, *, base: float = 0.5, cap: float = 4.0) -> None:
        self._base = float(base)
        self._cap = float(cap)

    def __call__(self, retry_state) -> float:
        n = retry_state.attempt_number
        if n <= 1:
            return 0.0
        return min(self._cap, self._base * (2 ** (n - 2)))


def bounded_retrying(
    *,
    op: str,
    max_attempts: int,
    base: float,
    cap: float,
    should_retry: Callable[[BaseException], bool],
    **log_fields: Any,
) -> Retrying:
    """
    Retrying with a fixed attempt budget and capped exponential backoff.
    Raises tenacity.RetryError once the budget is spent.
    """

    def _before_sleep(retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        sleep = retry_state.next_action.sleep if retry_state.next_action else None
        log.warning(
            f"{op}.retry",
            attempt=retry_state.attempt_number,
            sleep_s=sleep,
            error=repr(exc) if exc else None,
            **log_fields,
        )

    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=DeterministicExponentialBackoff(base=base, cap=cap),
        retry=retry_if_exception(should_retry),
        reraise=False,
        before_sleep=_before_sleep,
    )
