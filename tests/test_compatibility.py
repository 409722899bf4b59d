"""Tests for single-record compatibility checks."""

import pytest

from provider_migration.client.exceptions import StateError
from provider_migration.migration.compatibility import CompatibilityValidator
from provider_migration.migration.types import LegacyRecord
from tests.conftest import make_record


class TestCompatibilityValidator:
    def test_unknown_category_with_empty_config(self, catalog):
        report = CompatibilityValidator(catalog).check(
            LegacyRecord(id="g1", category="gamma", raw_config={})
        )

        assert report.compatible is False
        assert report.issues == [
            "Unsupported provider type: gamma",
            "Connection configuration is empty or missing",
        ]
        assert "Consider using a custom provider configuration" in report.recommendations

    def test_mapped_record_is_compatible(self, catalog):
        report = CompatibilityValidator(catalog).check(make_record("a1", "alpha"))

        assert report.compatible is True
        assert report.issues == []
        assert report.recommendations == []

    def test_missing_config(self, catalog):
        report = CompatibilityValidator(catalog).check(
            LegacyRecord(id="a1", category="alpha", raw_config=None)
        )

        assert report.compatible is False
        assert report.recommendations == [
            "Ensure connection has valid configuration before migration"
        ]

    def test_deprecated_markers(self, catalog):
        record = make_record("a1", "alpha", raw_config={"api_key": "k", "legacy_mode": True})
        validator = CompatibilityValidator(catalog, deprecated_markers=["legacy_mode"])

        report = validator.check(record)

        assert report.compatible is False
        assert report.issues == ["Connection uses deprecated features: legacy_mode"]

    def test_false_marker_is_ignored(self, catalog):
        record = make_record(
            "a1", "alpha", raw_config={"api_key": "k", "deprecated_feature": False}
        )

        assert CompatibilityValidator(catalog).check(record).compatible is True


class TestOrchestratorCompatibility:
    def test_check_by_id(self, orchestrator, seeded_records):
        report = orchestrator.check_compatibility("gamma-1")

        assert report.compatible is False
        assert report.issues == ["Unsupported provider type: gamma"]

    def test_check_unknown_id(self, orchestrator):
        with pytest.raises(StateError):
            orchestrator.check_compatibility("missing")

    def test_check_does_not_touch_store(self, orchestrator, record_store):
        orchestrator.check_compatibility(make_record("x1", "alpha"))

        assert record_store.count() == 0
