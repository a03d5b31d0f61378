from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock

from .membership import Snapshot


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class CycleResult:
    outcome: str  # unavailable|unchanged|applied|apply_failed|error
    fetched: Snapshot | None = None
    added: Snapshot = ()
    removed: Snapshot = ()
    message: str = ""
    ts: str = field(default_factory=utc_now)

    @property
    def ok(self) -> bool:
        return self.outcome in {"unchanged", "applied"}


class RuntimeState:
    """Read-only view of the control loop, published for the status API."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.applied: Snapshot = ()
        self.last_result: CycleResult | None = None
        self.last_applied_at: str | None = None
        self.counts: dict[str, int] = {}  # outcome -> cycles

    def record(self, result: CycleResult, applied: Snapshot) -> None:
        with self.lock:
            self.applied = applied
            self.last_result = result
            self.counts[result.outcome] = self.counts.get(result.outcome, 0) + 1
            if result.outcome == "applied":
                self.last_applied_at = result.ts

    def snapshot(self) -> tuple[Snapshot, CycleResult | None, str | None, dict[str, int]]:
        with self.lock:
            return self.applied, self.last_result, self.last_applied_at, dict(self.counts)
