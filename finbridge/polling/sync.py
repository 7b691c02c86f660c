"""
Cursor sync loop for Plaid's /transactions/sync change feed.

Drains pages of added / modified / removed transactions, starting from a
cursor (None means "from the beginning"), until the feed reports no more
pages. An empty next_cursor means the feed is still being prepared; the
same request is repeated after a delay without accumulating anything.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

import structlog

from finbridge.core.errors import SyncTimeoutError
from finbridge.plaid.models import Transaction, TransactionsSyncPage
from finbridge.polling.config import SyncConfig
from finbridge.polling.metrics import (
    PollMetrics,
    PollOutcome,
    PollSession,
    SessionStatus,
    get_poll_metrics,
)

logger = structlog.get_logger()

PageFetcher = Callable[[Optional[str]], Awaitable[TransactionsSyncPage]]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class SyncResult:
    """Accumulated deltas across every page of one sync traversal."""

    added: List[Transaction] = field(default_factory=list)
    modified: List[Transaction] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    cursor: Optional[str] = None
    pages: int = 0
    not_ready_waits: int = 0
    truncated: bool = False

    @property
    def removed_ids(self) -> Set[str]:
        return set(self.removed)


async def sync_transactions(
    fetch_page: PageFetcher,
    config: Optional[SyncConfig] = None,
    cursor: Optional[str] = None,
    operation_name: str = "transactions_sync",
    sleep: Sleeper = asyncio.sleep,
    metrics: Optional[PollMetrics] = None,
) -> SyncResult:
    """
    Drain the change feed starting at ``cursor``.

    Args:
        fetch_page: Coroutine function returning the page for a cursor
        config: Not-ready delay and loop bounds
        cursor: Starting cursor, None for the full history
        operation_name: Name for logging and metrics
        sleep: Coroutine used for the not-ready wait
        metrics: Tracker that receives the finished session

    Returns:
        SyncResult with every page's added, modified and removed entries
        in fetch order and the last non-empty cursor

    Raises:
        SyncTimeoutError: If max_pages or max_not_ready_waits is exceeded
        Exception: Any error raised by fetch_page, unchanged
    """
    config = config or SyncConfig()
    metrics = metrics or get_poll_metrics()
    session = PollSession(operation=operation_name, kind="sync")
    result = SyncResult(cursor=cursor)

    logger.info(
        "sync.started",
        operation=operation_name,
        from_beginning=cursor is None,
        max_pages=config.max_pages,
        max_records=config.max_records,
    )

    try:
        while True:
            page = await fetch_page(result.cursor)

            if not page.is_ready:
                result.not_ready_waits += 1
                session.record(PollOutcome.NOT_READY, delay_seconds=config.not_ready_delay)
                if (
                    config.max_not_ready_waits is not None
                    and result.not_ready_waits > config.max_not_ready_waits
                ):
                    raise SyncTimeoutError(
                        f"Transaction feed for {operation_name} was not ready after "
                        f"{config.max_not_ready_waits} waits"
                    )
                logger.info(
                    "sync.not_ready",
                    operation=operation_name,
                    waits=result.not_ready_waits,
                    delay_seconds=config.not_ready_delay,
                )
                await sleep(config.not_ready_delay)
                continue

            session.record(PollOutcome.READY)
            result.pages += 1
            result.added.extend(page.added)
            result.modified.extend(page.modified)
            result.removed.extend(r.transaction_id for r in page.removed)
            result.cursor = page.next_cursor

            logger.debug(
                "sync.page_fetched",
                operation=operation_name,
                page=result.pages,
                added=len(page.added),
                modified=len(page.modified),
                removed=len(page.removed),
                has_more=page.has_more,
            )

            if not page.has_more:
                break

            if config.max_records is not None and len(result.added) > config.max_records:
                result.truncated = True
                logger.info(
                    "sync.record_cap_reached",
                    operation=operation_name,
                    added=len(result.added),
                    max_records=config.max_records,
                )
                break

            if config.max_pages is not None and result.pages >= config.max_pages:
                raise SyncTimeoutError(
                    f"Transaction feed for {operation_name} still had more data "
                    f"after {config.max_pages} pages"
                )
    except SyncTimeoutError as e:
        session.finish(SessionStatus.EXHAUSTED)
        session.metadata.update(pages=result.pages, not_ready_waits=result.not_ready_waits)
        metrics.record(session)
        logger.error("sync.timed_out", operation=operation_name, error=str(e))
        raise
    except Exception as e:
        session.record(PollOutcome.PERMANENT, e)
        session.finish(SessionStatus.FAILED)
        metrics.record(session)
        logger.error(
            "sync.failed",
            operation=operation_name,
            pages=result.pages,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    session.finish(SessionStatus.READY)
    session.metadata.update(
        pages=result.pages,
        not_ready_waits=result.not_ready_waits,
        added=len(result.added),
        truncated=result.truncated,
    )
    metrics.record(session)
    logger.info(
        "sync.completed",
        operation=operation_name,
        pages=result.pages,
        added=len(result.added),
        modified=len(result.modified),
        removed=len(result.removed),
        not_ready_waits=result.not_ready_waits,
    )
    return result
