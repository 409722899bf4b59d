"""Tests for risk analysis and target spec building."""

from provider_migration.migration.catalog import default_catalog
from provider_migration.migration.risk import (
    analyze_risks,
    missing_config_risk,
    unsupported_category_risks,
    volume_risk,
)
from provider_migration.migration.specs import TargetSpecBuilder, flatten_sub_resources
from provider_migration.migration.types import RiskKind, RiskSeverity
from tests.conftest import make_record


class TestRiskAnalysis:
    def test_no_risks_for_clean_mapped_records(self, catalog):
        records = [make_record("a1", "alpha"), make_record("b1", "beta")]
        specs = TargetSpecBuilder(catalog).build({"alpha": 1, "beta": 1}).target_specs

        assert analyze_risks(records, specs) == []

    def test_unsupported_category_names_every_orphan(self, catalog):
        records = [
            make_record("a1", "alpha"),
            make_record("g1", "gamma"),
            make_record("g2", "gamma"),
        ]
        specs = TargetSpecBuilder(catalog).build({"alpha": 1, "gamma": 2}).target_specs

        risks = unsupported_category_risks(records, specs)

        assert len(risks) == 1
        risk = risks[0]
        assert risk.kind is RiskKind.COMPATIBILITY
        assert risk.severity is RiskSeverity.HIGH
        assert risk.affected_record_ids == ("g1", "g2")
        assert risk.description == "2 connections use unsupported provider type 'gamma'"

    def test_one_risk_per_unsupported_category(self, catalog):
        records = [
            make_record("g1", "gamma"),
            make_record("d1", "delta"),
            make_record("a1", "alpha"),
            make_record("g2", "gamma"),
        ]
        specs = TargetSpecBuilder(catalog).build({"alpha": 1, "gamma": 2, "delta": 1}).target_specs

        risks = unsupported_category_risks(records, specs)

        assert [r.affected_record_ids for r in risks] == [("g1", "g2"), ("d1",)]
        assert all(r.severity is RiskSeverity.HIGH for r in risks)
        assert "'gamma'" in risks[0].description
        assert "'delta'" in risks[1].description

    def test_clean_records_have_no_unsupported_risk(self, catalog):
        specs = TargetSpecBuilder(catalog).build({"alpha": 1}).target_specs

        assert unsupported_category_risks([make_record("a1", "alpha")], specs) == []

    def test_missing_config(self):
        records = [make_record("a1", "alpha"), make_record("a2", "alpha", raw_config={})]

        risk = missing_config_risk(records)

        assert risk is not None
        assert risk.kind is RiskKind.CONFIGURATION
        assert risk.severity is RiskSeverity.MEDIUM
        assert risk.affected_record_ids == ("a2",)

    def test_volume_threshold_is_exclusive(self):
        assert volume_risk(100, threshold=100) is None

        risk = volume_risk(101, threshold=100)
        assert risk is not None
        assert risk.kind is RiskKind.PERFORMANCE
        assert risk.affected_record_ids == ()

    def test_stable_order(self, catalog):
        records = [make_record(f"g{i}", "gamma", raw_config={}) for i in range(3)]

        risks = analyze_risks(records, [], performance_threshold=2)

        assert [r.kind for r in risks] == [
            RiskKind.COMPATIBILITY,
            RiskKind.CONFIGURATION,
            RiskKind.PERFORMANCE,
        ]

    def test_analyzer_never_reports_critical(self, catalog):
        records = [make_record(f"g{i}", "gamma", raw_config={}) for i in range(5)]

        risks = analyze_risks(records, [], performance_threshold=1)

        assert all(r.severity is not RiskSeverity.CRITICAL for r in risks)


class TestTargetSpecBuilder:
    def test_unmapped_categories_are_reported(self, catalog):
        result = TargetSpecBuilder(catalog).build({"gamma": 1, "beta": 2, "alpha": 3})

        assert [s.category for s in result.target_specs] == ["alpha", "beta"]
        assert result.unmapped_categories == ["gamma"]

    def test_spec_carries_catalog_definition(self, catalog):
        spec = TargetSpecBuilder(catalog).build_spec("beta", 7)

        assert spec is not None
        assert spec.identifier == "beta-target"
        assert spec.name == "Beta Provider"
        assert spec.affected_record_count == 7
        assert spec.sub_resource_definitions == [{"identifier": "beta-base", "name": "Beta Base"}]

    def test_specs_do_not_share_catalog_state(self, catalog):
        builder = TargetSpecBuilder(catalog)
        spec = builder.build_spec("alpha", 1)
        spec.target_definition["name"] = "changed"

        assert builder.build_spec("alpha", 1).name == "Alpha Provider"

    def test_flatten_sub_resources(self):
        builder = TargetSpecBuilder(default_catalog())
        specs = builder.build({"openai": 2, "anthropic": 1}).target_specs

        flat = flatten_sub_resources(specs)

        assert [(s.category, s.identifier) for s in flat] == [
            ("anthropic", "claude-3-opus-20240229"),
            ("anthropic", "claude-3-sonnet-20240229"),
            ("openai", "gpt-4"),
            ("openai", "gpt-3.5-turbo"),
        ]
        assert flat[-1].affected_record_count == 2
