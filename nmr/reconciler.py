from __future__ import annotations

import time
from threading import Event, Thread
from typing import Protocol

from .alerts import notify_apply_state
from .appliers import ApplyFailed, RuleApplier
from .db import log_event
from .kube import SourceUnavailable
from .membership import Snapshot, differs
from .runtime import CycleResult, RuntimeState


class MemberSource(Protocol):
    def fetch(self) -> Snapshot: ...


class Reconciler:
    """Keeps the configured applier in step with cluster membership.

    The last successfully applied snapshot lives only in this instance and
    starts empty. The first successful fetch is always applied, and so is
    every fetch after a failed apply, changed or not.
    """

    def __init__(
        self,
        source: MemberSource,
        applier: RuleApplier,
        interval_s: float = 5,
        runtime: RuntimeState | None = None,
    ):
        self.source = source
        self.applier = applier
        self.interval_s = max(0.1, float(interval_s))
        self.runtime = runtime or RuntimeState()
        self.held: Snapshot = ()
        self._applied_once = False
        self._dirty = False  # last apply failed; downstream state unknown
        self._failing = False
        self._stop = Event()
        self._thr: Thread | None = None

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = Thread(target=self._loop, name="nmr-reconciler", daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop.set()

    def is_running(self) -> bool:
        return bool(self._thr and self._thr.is_alive())

    def _loop(self) -> None:
        log_event("INFO", f"Reconciler started: {self.applier.describe()}, every {self.interval_s}s")
        next_at = time.monotonic()
        while not self._stop.is_set():
            self.run_once()
            # Fixed rate: cycles start every interval_s; an overrun skips ahead.
            next_at += self.interval_s
            now = time.monotonic()
            if next_at < now:
                next_at = now
            self._stop.wait(next_at - now)
        log_event("INFO", "Reconciler stopped")

    def run_once(self) -> CycleResult:
        try:
            result = self._tick()
        except Exception as e:
            log_event("ERROR", f"Reconciler tick failed: {type(e).__name__}: {e}")
            result = CycleResult(outcome="error", message=f"{type(e).__name__}: {e}")
        self.runtime.record(result, self.held)
        return result

    def _tick(self) -> CycleResult:
        try:
            fetched = self.source.fetch()
        except SourceUnavailable as e:
            # No new information; an unreachable API is not an empty cluster.
            log_event("WARN", f"Membership unavailable, keeping {len(self.held)} address(es): {e}")
            return CycleResult(outcome="unavailable", message=str(e))

        if self._applied_once and not self._dirty and not differs(self.held, fetched):
            log_event("DEBUG", "No changes detected in cluster nodes")
            return CycleResult(outcome="unchanged", fetched=fetched)

        added = tuple(a for a in fetched if a not in self.held)
        removed = tuple(a for a in self.held if a not in fetched)
        if differs(self.held, fetched):
            log_event(
                "INFO",
                f"Membership changed from {len(self.held)} to {len(fetched)} address(es)"
                f" (+{', '.join(added) or '-'} / -{', '.join(removed) or '-'})",
            )
        else:
            log_event("INFO", f"Re-applying {len(fetched)} address(es); downstream state not confirmed")

        try:
            self.applier.apply(fetched)
        except ApplyFailed as e:
            self._dirty = True
            log_event("ERROR", f"Apply failed ({type(e).__name__}): {e}", component=self.applier.kind)
            self._set_failing(True, f"{type(e).__name__}: {e}", fetched)
            return CycleResult(outcome="apply_failed", fetched=fetched, added=added, removed=removed, message=str(e))
        except Exception:
            self._dirty = True
            raise

        self.held = fetched
        self._applied_once = True
        self._dirty = False
        self._set_failing(False, "Applied", fetched)
        log_event("INFO", f"Applied {len(fetched)} address(es) to {self.applier.describe()}", component=self.applier.kind)
        return CycleResult(outcome="applied", fetched=fetched, added=added, removed=removed)

    def _set_failing(self, failing: bool, detail: str, fetched: Snapshot) -> None:
        if failing == self._failing:
            return
        self._failing = failing
        notify_apply_state(self.applier.describe(), not failing, detail, fetched)
