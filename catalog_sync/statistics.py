"""Outcome counters for one sync run."""

import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class SyncStatistics:
    """Running counters of a sync call.

    Counters are only mutated from coroutines running on one event loop, so an
    increment between two awaits is atomic.
    """

    resource_name: str = "resources"
    processed: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    unresolved: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    def increment_processed(self, times: int = 1) -> None:
        self.processed += times

    def increment_created(self) -> None:
        self.created += 1

    def increment_updated(self) -> None:
        self.updated += 1

    def increment_unresolved(self) -> None:
        self.unresolved += 1

    def decrement_unresolved(self) -> None:
        self.unresolved -= 1

    def record_failure(self, message: str, failed_times: int = 1) -> None:
        self.failed += failed_times
        self.errors.append(message)

    def record_error_message(self, message: str) -> None:
        """Capture an error that does not count as a failed draft."""
        self.errors.append(message)

    def record_warning(self, message: str) -> None:
        self.warnings.append(message)

    def finish(self) -> None:
        self.finished_at = time.monotonic()

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    @property
    def report_message(self) -> str:
        return (
            f"Summary: {self.processed} {self.resource_name} were processed in total "
            f"({self.created} created, {self.updated} updated, {self.failed} failed to sync "
            f"and {self.unresolved} {self.resource_name} with missing references)."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource_name,
            "processed": self.processed,
            "created": self.created,
            "updated": self.updated,
            "failed": self.failed,
            "unresolved": self.unresolved,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "duration_seconds": round(self.duration_seconds, 3),
        }
