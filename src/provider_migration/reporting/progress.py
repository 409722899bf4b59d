"""Progress tracking for migration executions.

The in-memory progress table doubles as the single-flight guard: a plan id
can only be claimed once at a time, and the claim is released when the
execution (or rollback) ends, however it ends.

Progress is ephemeral. The persisted MigrationResult remains the durable
record of whether a plan finished.
"""

import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any

from provider_migration.client.exceptions import ExecutionInProgressError, MigrationCancelledError
from provider_migration.migration.types import MigrationProgress, Phase, utcnow
from provider_migration.utils.logging import get_logger, log_migration_progress

logger = get_logger(__name__)


class EventType(Enum):
    """Events published while a plan executes or rolls back."""

    STARTED = "migration_started"
    PROGRESS = "migration_progress"
    COMPLETED = "migration_completed"
    FAILED = "migration_failed"
    ROLLED_BACK = "migration_rolled_back"


class ClaimKind(Enum):
    EXECUTION = "execution"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class ProgressEvent:
    """A published event. ``payload`` carries event-specific data."""

    type: EventType
    plan_id: str
    progress: MigrationProgress | None = None
    payload: dict[str, Any] | None = None


Listener = Callable[[ProgressEvent], None]


class ProgressPublisher:
    """Fan-out of progress events to subscribed listeners.

    A failing listener is logged and skipped; it never affects the
    migration that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(
                    "progress_listener_failed",
                    event_type=event.type.value,
                    plan_id=event.plan_id,
                    error=str(e),
                )


class ProgressHandle:
    """Owner's view of one claimed plan id."""

    def __init__(self, plan_id: str, kind: ClaimKind, publisher: ProgressPublisher):
        self.plan_id = plan_id
        self.kind = kind
        self.publisher = publisher
        self._cancel = threading.Event()
        self._lock = threading.Lock()
        self._progress = MigrationProgress(
            plan_id=plan_id,
            phase=Phase.VALIDATION,
            percent=0.0,
            message="Starting migration",
            started_at=utcnow(),
        )

    @property
    def progress(self) -> MigrationProgress:
        with self._lock:
            return self._progress.snapshot()

    def update(
        self,
        phase: Phase,
        percent: float,
        message: str,
        current_item: str | None = None,
    ) -> MigrationProgress:
        """Move to ``phase`` and publish a progress event.

        ``percent`` is clamped to 0-100 and never moves backwards.
        """
        with self._lock:
            progress = self._progress
            progress.phase = phase
            progress.percent = max(progress.percent, min(100.0, max(0.0, percent)))
            progress.message = message
            progress.current_item = current_item

            if 0 < progress.percent < 100:
                elapsed = utcnow() - progress.started_at
                progress.estimated_completion = progress.started_at + timedelta(
                    seconds=elapsed.total_seconds() * 100 / progress.percent
                )
            elif progress.percent >= 100:
                progress.estimated_completion = utcnow()

            snapshot = progress.snapshot()

        log_migration_progress(
            logger, self.plan_id, phase.value, snapshot.percent, message, current_item=current_item
        )
        self.publisher.publish(ProgressEvent(EventType.PROGRESS, self.plan_id, snapshot))
        return snapshot

    def fail(self, message: str) -> MigrationProgress:
        """Enter the failed phase, keeping the current percent."""
        with self._lock:
            self._progress.phase = Phase.FAILED
            self._progress.message = message
            self._progress.estimated_completion = None
            return self._progress.snapshot()

    def emit(self, event_type: EventType, payload: dict[str, Any] | None = None) -> None:
        self.publisher.publish(ProgressEvent(event_type, self.plan_id, self.progress, payload))

    def request_cancel(self) -> None:
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel.is_set():
            raise MigrationCancelledError(f"Migration cancelled: {self.plan_id}")


class ProgressRegistry:
    """Keyed claim table for in-flight plans.

    Usage:
        with registry.track(plan_id) as handle:
            handle.update(Phase.BACKUP, 20, "Creating backup")
    """

    def __init__(self, publisher: ProgressPublisher | None = None):
        self.publisher = publisher or ProgressPublisher()
        self._entries: dict[str, ProgressHandle] = {}
        self._lock = threading.Lock()

    def claim(self, plan_id: str, kind: ClaimKind = ClaimKind.EXECUTION) -> ProgressHandle:
        """
        Claim ``plan_id`` exclusively.

        Raises:
            ExecutionInProgressError: If the plan is already executing or
                rolling back
        """
        with self._lock:
            if plan_id in self._entries:
                raise ExecutionInProgressError(plan_id)
            handle = ProgressHandle(plan_id, kind, self.publisher)
            self._entries[plan_id] = handle

        logger.debug("plan_claimed", plan_id=plan_id, kind=kind.value)
        return handle

    def release(self, handle: ProgressHandle) -> None:
        with self._lock:
            if self._entries.get(handle.plan_id) is handle:
                del self._entries[handle.plan_id]

        logger.debug("plan_released", plan_id=handle.plan_id, kind=handle.kind.value)

    @contextmanager
    def track(
        self, plan_id: str, kind: ClaimKind = ClaimKind.EXECUTION
    ) -> Generator[ProgressHandle, None, None]:
        """Claim for the duration of the block; always released on exit."""
        handle = self.claim(plan_id, kind)
        try:
            yield handle
        finally:
            self.release(handle)

    def get(self, plan_id: str) -> MigrationProgress | None:
        """Progress snapshot of an executing plan, None otherwise."""
        with self._lock:
            handle = self._entries.get(plan_id)
        if handle is None or handle.kind is not ClaimKind.EXECUTION:
            return None
        return handle.progress

    def is_active(self, plan_id: str) -> bool:
        with self._lock:
            return plan_id in self._entries

    def cancel(self, plan_id: str) -> bool:
        """Flag an executing plan for cancellation at its next batch boundary."""
        with self._lock:
            handle = self._entries.get(plan_id)
        if handle is None or handle.kind is not ClaimKind.EXECUTION:
            return False
        handle.request_cancel()
        logger.info("cancellation_requested", plan_id=plan_id)
        return True

    def active_plan_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)
