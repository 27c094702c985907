# release_conductor/orchestration/retry.py
"""Bounded exponential-backoff retry for transient task failures."""

import logging
from collections.abc import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from release_conductor.config.schema import RetryConfig
from release_conductor.errors import ErrorKind
from release_conductor.orchestration.executor import TaskResult

logger = logging.getLogger(__name__)


def is_transient_failure(result: TaskResult) -> bool:
    """
    Returns True if a dispatch result should be retried.

    Only TRANSIENT failures are retried. Configuration errors and rejections
    need a human; timeouts are decided by the poll loop, never here.
    """
    return result.failed and result.error_kind == ErrorKind.TRANSIENT


def _last_result(retry_state: RetryCallState) -> TaskResult:
    # Attempts exhausted: surface the final failed result instead of RetryError
    return retry_state.outcome.result()


def transient_retrying(config: RetryConfig) -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.backoff_multiplier,
            min=config.backoff_min_seconds,
            max=config.backoff_max_seconds,
        ),
        retry=retry_if_result(is_transient_failure),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        retry_error_callback=_last_result,
    )


async def run_with_retry(
    config: RetryConfig, attempt: Callable[..., Awaitable[TaskResult]], *args
) -> TaskResult:
    """
    Await `attempt(*args)` until it does not fail transiently or attempts run out.

    `attempt` must be a coroutine function; tenacity calls plain callables
    synchronously and would hand back an unawaited coroutine.

    Exceptions raised by `attempt` (InvalidStateError) propagate unchanged.
    """
    return await transient_retrying(config)(attempt, *args)
