"""
Bounded-retry poller for resources that are generated asynchronously.

Plaid builds asset and consumer reports in the background; fetching one
before it is ready fails. poll_with_retries keeps calling the fetch with a
constant delay until it succeeds or the attempt budget runs out.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from finbridge.plaid.errors import APIConnectionError, PlaidAPIError
from finbridge.polling.config import PollConfig
from finbridge.polling.metrics import (
    PollMetrics,
    PollOutcome,
    PollSession,
    SessionStatus,
    get_poll_metrics,
)

logger = structlog.get_logger()

T = TypeVar("T")

Classifier = Callable[[Exception], PollOutcome]
Sleeper = Callable[[float], Awaitable[None]]


class RetriesExhaustedError(Exception):
    """Raised when a poll session uses its whole attempt budget."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[Exception]):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Ran out of retries while polling {operation} after {attempts} attempts"
        )


def treat_all_as_transient(error: Exception) -> PollOutcome:
    """Default classifier: every failure is retried until the budget runs out.

    No attempt is made to tell a misconfigured request from a report that is
    still being generated, so a permanent error costs the full budget.
    """
    return PollOutcome.TRANSIENT


def classify_plaid_error(error: Exception) -> PollOutcome:
    """Classifier for Plaid report fetches.

    PRODUCT_NOT_READY means the report is still being built. Rate limits,
    5xx responses and connection failures are worth retrying. Any other
    structured error, or an error raised locally, will not fix itself.
    """
    if isinstance(error, PlaidAPIError):
        if error.is_product_not_ready:
            return PollOutcome.NOT_READY
        if error.status_code >= 500 or error.status_code == 429:
            return PollOutcome.TRANSIENT
        return PollOutcome.PERMANENT
    if isinstance(error, APIConnectionError):
        return PollOutcome.TRANSIENT
    return PollOutcome.PERMANENT


async def poll_with_retries(
    fetch: Callable[[], Awaitable[T]],
    config: Optional[PollConfig] = None,
    operation_name: str = "operation",
    classify: Classifier = treat_all_as_transient,
    sleep: Sleeper = asyncio.sleep,
    metrics: Optional[PollMetrics] = None,
) -> T:
    """
    Call ``fetch`` until it succeeds or the attempt budget is exhausted.

    Attempts are strictly sequential; after a retryable failure the poller
    waits ``config.delay`` seconds before the next attempt. No delay follows
    the final attempt.

    Args:
        fetch: Zero-argument coroutine function producing the resource
        config: Delay and attempt budget (defaults to 1s x 20)
        operation_name: Name for logging and metrics
        classify: Maps a fetch error to NOT_READY, TRANSIENT or PERMANENT
        sleep: Coroutine used to wait between attempts
        metrics: Tracker that receives the finished session

    Returns:
        The first successful fetch result

    Raises:
        RetriesExhaustedError: If every attempt failed
        Exception: The fetch error itself when classified as PERMANENT
    """
    config = config or PollConfig()
    metrics = metrics or get_poll_metrics()
    session = PollSession(operation=operation_name, max_attempts=config.max_attempts)
    session.metadata["max_wait_seconds"] = config.worst_case_seconds()
    logger.debug(
        "poll.started",
        operation=operation_name,
        max_attempts=config.max_attempts,
        max_wait_seconds=config.worst_case_seconds(),
    )

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await fetch()
        except Exception as e:
            outcome = classify(e)

            if outcome == PollOutcome.PERMANENT:
                session.record(outcome, e)
                session.finish(SessionStatus.FAILED)
                metrics.record(session)
                logger.error(
                    "poll.permanent_failure",
                    operation=operation_name,
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            if attempt >= config.max_attempts:
                session.record(outcome, e)
                session.finish(SessionStatus.EXHAUSTED)
                metrics.record(session)
                logger.error(
                    "poll.retries_exhausted",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(e),
                )
                raise RetriesExhaustedError(operation_name, attempt, e) from e

            session.record(outcome, e, delay_seconds=config.delay)
            logger.info(
                "poll.attempt_failed",
                operation=operation_name,
                attempt=attempt,
                max_attempts=config.max_attempts,
                outcome=outcome.value,
                delay_seconds=config.delay,
                error=str(e),
            )
            await sleep(config.delay)
            continue

        session.record(PollOutcome.READY)
        session.finish(SessionStatus.READY)
        metrics.record(session)
        logger.info(
            "poll.ready",
            operation=operation_name,
            attempts=attempt,
            duration_seconds=session.duration_seconds,
        )
        return result

    # max_attempts >= 1, so the loop always returns or raises
    raise RuntimeError("Polling finished without a result")
