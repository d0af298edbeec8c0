"""
Run History Tracking

Simple in-memory history of controller runs and per-profile evaluations.
Nothing here is read back by the controller; each run starts from scratch.
"""

import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from .models import RunReport


@dataclass
class ProfileEvaluation:
    """A single profile evaluation."""

    timestamp: str  # ISO format
    email: str
    dry_run: bool
    stage: str | None
    target_level: int | None
    actions: list[str]
    error: str | None = None


class RunHistory:
    """Tracks recent runs and profile evaluations."""

    def __init__(self, max_runs: int = 200, max_hours: int = 48):
        """Initialize run history.

        Args:
            max_runs: How many run reports to keep
            max_hours: How many hours of profile evaluations to keep
        """
        self.max_age = timedelta(hours=max_hours)
        self.runs: deque[RunReport] = deque(maxlen=max_runs)
        self.evaluations: deque[ProfileEvaluation] = deque(maxlen=10000)
        self.lock = threading.Lock()

    def record_run(self, report: RunReport):
        """Store a finished run and one evaluation per profile."""
        timestamp = (report.finished_at or datetime.now(timezone.utc)).isoformat()
        evaluations = [
            ProfileEvaluation(
                timestamp=timestamp,
                email=result.email,
                dry_run=report.dry_run,
                stage=result.stage.value if result.stage else None,
                target_level=result.target_level,
                actions=list(result.actions),
                error=result.error,
            )
            for result in report.results
        ]

        with self.lock:
            self.runs.append(report)
            self.evaluations.extend(evaluations)
            self._cleanup_old_data()

    def last_run(self) -> dict | None:
        """Most recent run report as a dict, or None."""
        with self.lock:
            if not self.runs:
                return None
            return self.runs[-1].as_dict()

    def get_runs(self, limit: int = 20) -> list[dict]:
        """Most recent run reports, newest first."""
        with self.lock:
            runs = list(self.runs)[-limit:]
        return [r.as_dict() for r in reversed(runs)]

    def get_evaluations(
        self,
        email: str | None = None,
        hours: int | None = None
    ) -> list[dict]:
        """Get profile evaluations.

        Args:
            email: Filter by profile (None = all profiles)
            hours: How many hours back (None = all available)

        Returns:
            List of evaluations as dicts
        """
        with self.lock:
            evaluations = list(self.evaluations)

        if email:
            evaluations = [e for e in evaluations if e.email == email]

        if hours:
            cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
            evaluations = [
                e for e in evaluations
                if datetime.fromisoformat(e.timestamp) > cutoff
            ]

        return [asdict(e) for e in evaluations]

    def clear(self):
        with self.lock:
            self.runs.clear()
            self.evaluations.clear()

    def _cleanup_old_data(self):
        """Remove evaluations older than max_age. Caller must hold the lock."""
        cutoff = datetime.now(timezone.utc) - self.max_age
        while self.evaluations and datetime.fromisoformat(self.evaluations[0].timestamp) < cutoff:
            self.evaluations.popleft()


# Global history instance
run_history = RunHistory()
