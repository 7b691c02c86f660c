"""
Poll session records and in-memory metrics.

Every report poll and transaction sync produces a PollSession record;
PollMetrics keeps a bounded history of them for the metrics endpoint.
"""

import itertools
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class PollOutcome(str, Enum):
    """Classification of a single fetch attempt."""

    READY = "ready"
    NOT_READY = "not_ready"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class SessionStatus(str, Enum):
    """Terminal status of a poll session."""

    RUNNING = "running"
    READY = "ready"
    EXHAUSTED = "exhausted"  # Attempt or page budget ran out
    FAILED = "failed"  # Permanent error


@dataclass
class PollAttempt:
    """One invocation of a fetch operation within a session."""

    index: int
    outcome: PollOutcome
    error: Optional[str] = None
    delay_seconds: float = 0.0


_session_counter = itertools.count(1)


@dataclass
class PollSession:
    """A bounded sequence of attempts for one logical resource request."""

    operation: str
    kind: str = "poll"
    max_attempts: Optional[int] = None
    session_id: str = field(
        default_factory=lambda: f"{datetime.now(timezone.utc):%Y%m%d-%H%M%S}-{next(_session_counter)}"
    )
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: Optional[datetime] = None
    status: SessionStatus = SessionStatus.RUNNING
    attempts: List[PollAttempt] = field(default_factory=list)
    duration_seconds: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def record(
        self,
        outcome: PollOutcome,
        error: Optional[BaseException] = None,
        delay_seconds: float = 0.0,
    ) -> PollAttempt:
        attempt = PollAttempt(
            index=len(self.attempts) + 1,
            outcome=outcome,
            error=str(error) if error is not None else None,
            delay_seconds=delay_seconds,
        )
        self.attempts.append(attempt)
        return attempt

    def finish(self, status: SessionStatus) -> None:
        self.ended_at = datetime.now(timezone.utc)
        self.status = status
        self.duration_seconds = (self.ended_at - self.started_at).total_seconds()

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def last_error(self) -> Optional[str]:
        for attempt in reversed(self.attempts):
            if attempt.error:
                return attempt.error
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "operation": self.operation,
            "kind": self.kind,
            "status": self.status.value,
            "attempts": self.attempt_count,
            "max_attempts": self.max_attempts,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_seconds": self.duration_seconds,
            "last_error": self.last_error,
            "metadata": self.metadata,
        }


@dataclass
class AggregateMetrics:
    """Aggregated metrics across recorded sessions."""

    total_sessions: int = 0
    ready_sessions: int = 0
    exhausted_sessions: int = 0
    failed_sessions: int = 0

    total_attempts: int = 0
    avg_attempts_per_session: float = 0.0
    avg_duration_seconds: float = 0.0

    last_ready: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ["last_ready", "last_failure"]:
            if data[key]:
                data[key] = data[key].isoformat()
        return data


class PollMetrics:
    """
    In-memory metrics tracker for poll and sync sessions.

    Keeps the most recent sessions only; nothing is persisted.
    """

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self._history: List[PollSession] = []

    def record(self, session: PollSession) -> None:
        self._history.append(session)
        if len(self._history) > self.history_size:
            self._history = self._history[-self.history_size :]

    def get_history(
        self, limit: Optional[int] = None, operation: Optional[str] = None
    ) -> List[PollSession]:
        """Recorded sessions, newest first."""
        history = [
            s for s in reversed(self._history)
            if operation is None or s.operation == operation
        ]
        if limit:
            history = history[:limit]
        return history

    def get_aggregate_metrics(self, hours: Optional[int] = None) -> AggregateMetrics:
        sessions = self._history
        if hours:
            cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
            sessions = [s for s in sessions if s.started_at >= cutoff]

        metrics = AggregateMetrics()
        if not sessions:
            return metrics

        metrics.total_sessions = len(sessions)
        for session in sessions:
            if session.status == SessionStatus.READY:
                metrics.ready_sessions += 1
                metrics.last_ready = session.started_at
            elif session.status == SessionStatus.EXHAUSTED:
                metrics.exhausted_sessions += 1
                metrics.last_failure = session.started_at
            elif session.status == SessionStatus.FAILED:
                metrics.failed_sessions += 1
                metrics.last_failure = session.started_at

        metrics.total_attempts = sum(s.attempt_count for s in sessions)
        metrics.avg_attempts_per_session = metrics.total_attempts / metrics.total_sessions
        metrics.avg_duration_seconds = (
            sum(s.duration_seconds for s in sessions) / metrics.total_sessions
        )
        return metrics

    def get_success_rate(self, hours: Optional[int] = None) -> float:
        agg = self.get_aggregate_metrics(hours)
        if agg.total_sessions == 0:
            return 0.0
        return agg.ready_sessions / agg.total_sessions

    def summary(self, hours: Optional[int] = None, limit: int = 10) -> Dict[str, Any]:
        return {
            "aggregate": self.get_aggregate_metrics(hours).to_dict(),
            "success_rate": self.get_success_rate(hours),
            "recent_sessions": [s.to_dict() for s in self.get_history(limit=limit)],
        }


# Global metrics instance
_metrics_instance: Optional[PollMetrics] = None


def get_poll_metrics() -> PollMetrics:
    """Get or create the process-wide metrics tracker."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = PollMetrics()
    return _metrics_instance
