"""Single-flight and debounce orchestration around the reconciler."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from ace_index.index.models import IndexResult, ProgressReporter
from ace_index.index.reconciler import IndexReconciler
from ace_index.security import project_relative_path, resolve_project_path

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class TimerHandle(Protocol):
    """Subset of threading.Timer used by the scheduler."""

    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return threading.Timer(delay, callback)


class IndexScheduler:
    """Runs at most one reconciliation at a time; extra triggers are dropped.

    File triggers are debounced per path, so a burst of saves collapses into a
    single reconciliation after the quiet period.
    """

    def __init__(
        self,
        reconciler: IndexReconciler,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory = _thread_timer,
        reporter: ProgressReporter | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory
        self._reporter = reporter
        self._in_flight = threading.Lock()
        self._timers_lock = threading.Lock()
        self._timers: dict[str, TimerHandle] = {}
        self._timer_generations: dict[str, int] = {}
        self._generation = 0

    @property
    def is_busy(self) -> bool:
        """Return True while a reconciliation is running."""
        return self._in_flight.locked()

    @property
    def pending_paths(self) -> tuple[str, ...]:
        """Return paths with a debounce timer still pending."""
        with self._timers_lock:
            return tuple(sorted(self._timers))

    def run_project(self, reporter: ProgressReporter | None = None) -> IndexResult | None:
        """Run a full reindex now; return None when another run is in flight."""
        if not self._in_flight.acquire(blocking=False):
            logger.info("Skipping project index; another index run is in progress")
            return None
        try:
            return self._reconciler.index_project(reporter or self._reporter)
        finally:
            self._in_flight.release()

    def run_file(
        self, path: str | Path, reporter: ProgressReporter | None = None
    ) -> IndexResult | None:
        """Reconcile one file now; return None when another run is in flight."""
        if not self._in_flight.acquire(blocking=False):
            logger.info("Skipping index of %s; another index run is in progress", path)
            return None
        try:
            return self._reconciler.index_file(path, reporter or self._reporter)
        finally:
            self._in_flight.release()

    def schedule_file(self, path: str | Path) -> None:
        """Debounce a file trigger; a newer trigger for the same file replaces it."""
        key = self._timer_key(path)
        with self._timers_lock:
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
            self._generation += 1
            generation = self._generation
            timer = self._timer_factory(
                self._debounce_seconds, lambda: self._fire(key, generation)
            )
            timer.daemon = True
            self._timers[key] = timer
            self._timer_generations[key] = generation
        timer.start()

    def shutdown(self) -> None:
        """Cancel every pending debounce timer."""
        with self._timers_lock:
            timers = list(self._timers.values())
            self._timers.clear()
            self._timer_generations.clear()
        for timer in timers:
            timer.cancel()

    def _timer_key(self, path: str | Path) -> str:
        root = self._reconciler.project_root
        relative = project_relative_path(root, resolve_project_path(root, path))
        return relative if relative is not None else str(path)

    def _fire(self, key: str, generation: int) -> None:
        with self._timers_lock:
            if self._timer_generations.get(key) != generation:
                return
            self._timers.pop(key, None)
            self._timer_generations.pop(key, None)
        try:
            result = self.run_file(key)
        except Exception:
            logger.exception("Index sync failed for %s", key)
            return
        if result is not None:
            logger.info("File index finished for %s: %s", key, result.message)
