"""Category catalog: legacy provider type -> canonical provider definition.

The orchestrator only depends on the ``CategoryCatalog`` protocol, so new
categories can be supplied from a YAML file (or any other lookup) without
touching the migration code.
"""

import copy
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from provider_migration.client.exceptions import ConfigurationError
from provider_migration.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    """Definition of the canonical target (and its models) for one category."""

    category: str
    target_definition: dict[str, Any]
    sub_resource_definitions: list[dict[str, Any]] = field(default_factory=list)


@runtime_checkable
class CategoryCatalog(Protocol):
    """Read-only lookup of category definitions."""

    def get(self, category: str) -> CatalogEntry | None: ...

    def categories(self) -> list[str]: ...


class StaticCategoryCatalog:
    """In-memory catalog. Returned entries are deep copies."""

    def __init__(self, entries: Iterable[CatalogEntry]):
        self._entries: dict[str, CatalogEntry] = {}
        for entry in entries:
            if entry.category in self._entries:
                raise ConfigurationError(f"Duplicate catalog category: {entry.category}")
            self._entries[entry.category] = entry

    def get(self, category: str) -> CatalogEntry | None:
        entry = self._entries.get(category)
        if entry is None:
            return None
        return CatalogEntry(
            category=entry.category,
            target_definition=copy.deepcopy(entry.target_definition),
            sub_resource_definitions=copy.deepcopy(entry.sub_resource_definitions),
        )

    def categories(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, category: object) -> bool:
        return category in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _chat_capabilities(max_context: int, roles: list[str], **extra: Any) -> dict[str, Any]:
    return {
        "supports_system_messages": True,
        "max_context_length": max_context,
        "supported_roles": roles,
        "supports_streaming": True,
        "supports_tools": True,
        **extra,
    }


DEFAULT_CATALOG_ENTRIES: tuple[CatalogEntry, ...] = (
    CatalogEntry(
        category="openai",
        target_definition={
            "identifier": "openai-migrated",
            "name": "OpenAI (Migrated)",
            "description": "Migrated OpenAI provider from legacy connections",
            "api_endpoint": "https://api.openai.com/v1",
            "auth_method": "api_key",
            "auth_config": {
                "type": "api_key",
                "fields": {
                    "api_key": {
                        "required": True,
                        "description": "OpenAI API Key",
                        "sensitive": True,
                    }
                },
                "headers": {"Authorization": "Bearer {{api_key}}"},
            },
            "capabilities": _chat_capabilities(
                128000,
                ["system", "user", "assistant"],
                supported_auth_methods=["api_key"],
            ),
        },
        sub_resource_definitions=[
            {
                "identifier": "gpt-4",
                "name": "GPT-4",
                "description": "OpenAI GPT-4 model",
                "context_length": 8192,
                "capabilities": _chat_capabilities(
                    8192, ["system", "user", "assistant"], supports_function_calling=True
                ),
                "is_default": True,
            },
            {
                "identifier": "gpt-3.5-turbo",
                "name": "GPT-3.5 Turbo",
                "description": "OpenAI GPT-3.5 Turbo model",
                "context_length": 4096,
                "capabilities": _chat_capabilities(
                    4096, ["system", "user", "assistant"], supports_function_calling=True
                ),
            },
        ],
    ),
    CatalogEntry(
        category="anthropic",
        target_definition={
            "identifier": "anthropic-migrated",
            "name": "Anthropic (Migrated)",
            "description": "Migrated Anthropic provider from legacy connections",
            "api_endpoint": "https://api.anthropic.com/v1",
            "auth_method": "api_key",
            "auth_config": {
                "type": "api_key",
                "fields": {
                    "api_key": {
                        "required": True,
                        "description": "Anthropic API Key",
                        "sensitive": True,
                    }
                },
                "headers": {"x-api-key": "{{api_key}}"},
            },
            "capabilities": _chat_capabilities(
                200000, ["user", "assistant"], supported_auth_methods=["api_key"]
            ),
        },
        sub_resource_definitions=[
            {
                "identifier": "claude-3-opus-20240229",
                "name": "Claude 3 Opus",
                "description": "Anthropic Claude 3 Opus model",
                "context_length": 200000,
                "capabilities": _chat_capabilities(
                    200000, ["user", "assistant"], supports_function_calling=True
                ),
                "is_default": True,
            },
            {
                "identifier": "claude-3-sonnet-20240229",
                "name": "Claude 3 Sonnet",
                "description": "Anthropic Claude 3 Sonnet model",
                "context_length": 200000,
                "capabilities": _chat_capabilities(
                    200000, ["user", "assistant"], supports_function_calling=True
                ),
            },
        ],
    ),
)


def default_catalog() -> StaticCategoryCatalog:
    """Built-in catalog with the OpenAI and Anthropic definitions."""
    return StaticCategoryCatalog(DEFAULT_CATALOG_ENTRIES)


def catalog_from_mapping(data: Mapping[str, Any]) -> StaticCategoryCatalog:
    """
    Build a catalog from a mapping of the form::

        categories:
          openai:
            target: {identifier: ..., name: ..., ...}
            sub_resources: [{identifier: ..., ...}]

    Raises:
        ConfigurationError: If the mapping is malformed
    """
    categories = data.get("categories")
    if not isinstance(categories, Mapping) or not categories:
        raise ConfigurationError("Catalog must define a non-empty 'categories' mapping")

    entries = []
    for category, body in categories.items():
        if not isinstance(body, Mapping) or not isinstance(body.get("target"), Mapping):
            raise ConfigurationError(f"Catalog category '{category}' needs a 'target' mapping")
        sub_resources = body.get("sub_resources") or []
        if not isinstance(sub_resources, list):
            raise ConfigurationError(
                f"Catalog category '{category}': 'sub_resources' must be a list"
            )
        entries.append(
            CatalogEntry(
                category=str(category),
                target_definition=dict(body["target"]),
                sub_resource_definitions=[dict(d) for d in sub_resources],
            )
        )
    return StaticCategoryCatalog(entries)


def load_catalog_from_yaml(path: str | Path) -> StaticCategoryCatalog:
    """Load a catalog file. See ``catalog_from_mapping`` for the format."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Catalog file not found: {path}")

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid catalog file {path}: {e}") from e

    catalog = catalog_from_mapping(data or {})
    logger.info("Category catalog loaded", path=str(path), categories=catalog.categories())
    return catalog
