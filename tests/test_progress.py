"""Tests for progress tracking, single-flight claims, and event fan-out."""

import pytest

from provider_migration.client.exceptions import ExecutionInProgressError, MigrationCancelledError
from provider_migration.migration.types import Phase
from provider_migration.reporting.progress import (
    ClaimKind,
    EventType,
    ProgressEvent,
    ProgressPublisher,
    ProgressRegistry,
)


class TestProgressRegistry:
    def test_claim_is_exclusive_per_plan(self):
        registry = ProgressRegistry()
        registry.claim("plan-1")

        with pytest.raises(ExecutionInProgressError):
            registry.claim("plan-1")
        with pytest.raises(ExecutionInProgressError):
            registry.claim("plan-1", ClaimKind.ROLLBACK)

        registry.claim("plan-2")
        assert registry.active_plan_ids() == ["plan-1", "plan-2"]

    def test_track_releases_on_error(self):
        registry = ProgressRegistry()

        with pytest.raises(RuntimeError):
            with registry.track("plan-1"):
                raise RuntimeError("boom")

        assert registry.is_active("plan-1") is False
        assert registry.get("plan-1") is None

    def test_get_returns_snapshot(self):
        registry = ProgressRegistry()
        handle = registry.claim("plan-1")
        handle.update(Phase.BACKUP, 20, "Creating backup")

        snapshot = registry.get("plan-1")
        snapshot.percent = 99

        assert registry.get("plan-1").percent == 20
        assert registry.get("plan-1").phase is Phase.BACKUP

    def test_rollback_claims_have_no_progress(self):
        registry = ProgressRegistry()
        registry.claim("plan-1", ClaimKind.ROLLBACK)

        assert registry.get("plan-1") is None
        assert registry.cancel("plan-1") is False

    def test_cancel_flags_handle(self):
        registry = ProgressRegistry()
        handle = registry.claim("plan-1")

        assert registry.cancel("plan-1") is True
        with pytest.raises(MigrationCancelledError):
            handle.raise_if_cancelled()


class TestProgressHandle:
    def test_percent_never_decreases_and_is_clamped(self):
        handle = ProgressRegistry().claim("plan-1")

        handle.update(Phase.MIGRATION, 50, "half")
        assert handle.update(Phase.MIGRATION, 40, "back").percent == 50
        assert handle.update(Phase.COMPLETE, 150, "done").percent == 100

    def test_estimated_completion(self):
        handle = ProgressRegistry().claim("plan-1")

        progress = handle.update(Phase.MIGRATION, 50, "half")

        assert progress.estimated_completion is not None
        assert progress.estimated_completion >= progress.started_at

    def test_fail_keeps_percent(self):
        handle = ProgressRegistry().claim("plan-1")
        handle.update(Phase.MIGRATION, 60, "working")

        progress = handle.fail("Migration failed: boom")

        assert progress.phase is Phase.FAILED
        assert progress.percent == 60
        assert progress.phase.is_terminal

    def test_update_publishes_event(self):
        registry = ProgressRegistry()
        events: list[ProgressEvent] = []
        registry.publisher.subscribe(events.append)
        handle = registry.claim("plan-1")

        handle.update(Phase.VALIDATION, 10, "Validating", current_item="rec-1")

        assert len(events) == 1
        assert events[0].type is EventType.PROGRESS
        assert events[0].progress.current_item == "rec-1"


class TestProgressPublisher:
    def test_failing_listener_does_not_block_others(self):
        publisher = ProgressPublisher()
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        publisher.subscribe(broken)
        publisher.subscribe(received.append)

        publisher.publish(ProgressEvent(EventType.STARTED, "plan-1"))

        assert len(received) == 1

    def test_unsubscribe(self):
        publisher = ProgressPublisher()
        received = []
        unsubscribe = publisher.subscribe(received.append)

        unsubscribe()
        publisher.publish(ProgressEvent(EventType.STARTED, "plan-1"))

        assert received == []
