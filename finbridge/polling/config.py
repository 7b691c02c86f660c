"""
Report polling and transaction sync configuration.

Defines retry budgets, fixed delays and the bounds placed on the
cursor sync loop.
"""

from typing import Optional

from pydantic import BaseModel, Field

from finbridge.core.config import Settings, get_settings


class PollConfig(BaseModel):
    """Configuration for polling a report that may not be ready yet.

    The delay is constant between attempts; there is no exponential growth.
    """

    delay: float = Field(
        default=1.0, ge=0, description="Seconds to wait between failed attempts"
    )
    max_attempts: int = Field(default=20, ge=1, description="Attempt budget")

    def worst_case_seconds(self) -> float:
        """Upper bound on time spent sleeping before the budget runs out."""
        return self.delay * (self.max_attempts - 1)


class SyncConfig(BaseModel):
    """Configuration for draining a cursor-paginated /transactions/sync feed.

    With every bound left at None the loop runs until the feed reports
    has_more=false.
    """

    not_ready_delay: float = Field(
        default=2.0, ge=0, description="Seconds to wait when the cursor is empty"
    )
    max_pages: Optional[int] = Field(
        default=None, ge=1, description="Pages to accept before giving up"
    )
    max_not_ready_waits: Optional[int] = Field(
        default=None, ge=0, description="Not-ready responses to tolerate"
    )
    max_records: Optional[int] = Field(
        default=None,
        ge=0,
        description="Stop normally once more than this many records were added",
    )


def get_poll_config(settings: Optional[Settings] = None) -> PollConfig:
    settings = settings or get_settings()
    return PollConfig(
        delay=settings.POLL_DELAY_SECONDS,
        max_attempts=settings.POLL_MAX_ATTEMPTS,
    )


def get_sync_config(settings: Optional[Settings] = None) -> SyncConfig:
    """Config for the primary transaction sync path."""
    settings = settings or get_settings()
    return SyncConfig(
        not_ready_delay=settings.SYNC_NOT_READY_DELAY_SECONDS,
        max_pages=settings.SYNC_MAX_PAGES,
        max_not_ready_waits=settings.SYNC_MAX_NOT_READY_WAITS,
    )


def get_fallback_sync_config(settings: Optional[Settings] = None) -> SyncConfig:
    """Config for the record-capped sync used when /transactions/get fails."""
    settings = settings or get_settings()
    return SyncConfig(
        not_ready_delay=settings.FALLBACK_SYNC_NOT_READY_DELAY_SECONDS,
        max_pages=settings.SYNC_MAX_PAGES,
        max_not_ready_waits=settings.SYNC_MAX_NOT_READY_WAITS,
        max_records=settings.FALLBACK_SYNC_MAX_RECORDS,
    )
