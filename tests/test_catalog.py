"""Tests for the category catalog."""

import pytest

from provider_migration.client.exceptions import ConfigurationError
from provider_migration.migration.catalog import (
    CatalogEntry,
    CategoryCatalog,
    StaticCategoryCatalog,
    catalog_from_mapping,
    default_catalog,
    load_catalog_from_yaml,
)

CATALOG_YAML = """
categories:
  mistral:
    target:
      identifier: mistral-migrated
      name: Mistral (Migrated)
      api_endpoint: https://api.mistral.ai/v1
    sub_resources:
      - identifier: mistral-large
        name: Mistral Large
        is_default: true
  local:
    target:
      identifier: local-migrated
      name: Local Runtime
"""


class TestStaticCategoryCatalog:
    def test_default_catalog(self):
        catalog = default_catalog()

        assert isinstance(catalog, CategoryCatalog)
        assert catalog.categories() == ["anthropic", "openai"]
        openai = catalog.get("openai")
        assert openai.target_definition["identifier"] == "openai-migrated"
        assert [d["identifier"] for d in openai.sub_resource_definitions] == [
            "gpt-4",
            "gpt-3.5-turbo",
        ]

    def test_unknown_category(self):
        assert default_catalog().get("cohere") is None

    def test_entries_are_copies(self):
        catalog = default_catalog()
        catalog.get("openai").target_definition["identifier"] = "mutated"

        assert catalog.get("openai").target_definition["identifier"] == "openai-migrated"

    def test_duplicate_category_rejected(self):
        entry = CatalogEntry("alpha", {"identifier": "a", "name": "A"})

        with pytest.raises(ConfigurationError):
            StaticCategoryCatalog([entry, entry])


class TestCatalogLoading:
    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "catalog.yaml"
        path.write_text(CATALOG_YAML)

        catalog = load_catalog_from_yaml(path)

        assert catalog.categories() == ["local", "mistral"]
        assert "mistral" in catalog
        assert len(catalog) == 2
        assert catalog.get("local").sub_resource_definitions == []
        assert catalog.get("mistral").sub_resource_definitions[0]["identifier"] == "mistral-large"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_catalog_from_yaml(tmp_path / "missing.yaml")

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"categories": {}},
            {"categories": {"x": {"sub_resources": []}}},
            {"categories": {"x": {"target": {"identifier": "x"}, "sub_resources": "nope"}}},
        ],
    )
    def test_malformed_mapping(self, data):
        with pytest.raises(ConfigurationError):
            catalog_from_mapping(data)
