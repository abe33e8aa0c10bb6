from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

IMPORT_COUNTERS = (
    "jobs_completed",
    "jobs_partially_failed",
    "jobs_failed",
    "jobs_cancelled",
    "jobs_crashed",
    "messages_rejected",
    "pages_failed",
    "items_imported",
    "items_failed",
)


def _import_counters() -> dict[str, int]:
    return dict.fromkeys(IMPORT_COUNTERS, 0)


@dataclass(slots=True)
class AgentHealth:
    """Liveness plus import counters for the worker's /health endpoint.

    ``metrics`` is handed to the job runner, which adds page and item counts
    to it directly; job-level outcomes are recorded here.
    """

    name: str
    healthy: bool = False
    ready: bool = False
    last_error: str | None = None
    last_success_at: datetime | None = None
    last_run_at: datetime | None = None
    last_job_finished_at: datetime | None = None
    metrics: dict[str, int] = field(default_factory=_import_counters)

    def mark_run(self) -> None:
        self.last_run_at = datetime.now(timezone.utc)

    def mark_success(self) -> None:
        self.healthy = True
        self.ready = True
        self.last_error = None
        self.last_success_at = datetime.now(timezone.utc)

    def mark_error(self, error: Exception) -> None:
        self.healthy = False
        self.last_error = str(error)

    def record_job_outcome(self, status: str) -> None:
        self._bump(f"jobs_{status}")
        self.last_job_finished_at = datetime.now(timezone.utc)

    def record_job_crash(self) -> None:
        self._bump("jobs_crashed")

    def record_rejected_message(self) -> None:
        self._bump("messages_rejected")

    def _bump(self, key: str) -> None:
        self.metrics[key] = self.metrics.get(key, 0) + 1

    def payload(self) -> dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "ready": self.ready,
            "last_error": self.last_error,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_job_finished_at": self.last_job_finished_at.isoformat() if self.last_job_finished_at else None,
            "metrics": self.metrics,
        }
