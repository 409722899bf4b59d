"""
Shared pytest fixtures for the provider migrator tests.

This module provides:
- A temporary SQLite state database (``db``) and matching configuration
- A two-category test catalog (``alpha`` and ``beta``)
- Seeded legacy records: 3 alpha, 2 beta, 1 gamma (gamma has no catalog entry)
- A wired ``MigrationOrchestrator`` using the local SQL registry
"""

from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest

from provider_migration.client.registry import SQLResourceRegistry
from provider_migration.config import MigratorConfig, StateConfig
from provider_migration.migration.catalog import CatalogEntry, StaticCategoryCatalog
from provider_migration.migration.coordinator import MigrationOrchestrator
from provider_migration.migration.database import Database
from provider_migration.migration.records import LegacyRecordStore
from provider_migration.migration.types import LegacyRecord

ALPHA_ENTRY = CatalogEntry(
    category="alpha",
    target_definition={"identifier": "alpha-target", "name": "Alpha Provider"},
    sub_resource_definitions=[
        {"identifier": "alpha-small", "name": "Alpha Small", "is_default": True},
        {"identifier": "alpha-large", "name": "Alpha Large"},
    ],
)

BETA_ENTRY = CatalogEntry(
    category="beta",
    target_definition={"identifier": "beta-target", "name": "Beta Provider"},
    sub_resource_definitions=[{"identifier": "beta-base", "name": "Beta Base"}],
)

SEED_CATEGORIES = ["alpha", "alpha", "alpha", "beta", "beta", "gamma"]


def make_record(
    record_id: str,
    category: str,
    raw_config: dict | None = None,
    offset: int = 0,
) -> LegacyRecord:
    """Legacy record with a deterministic creation time."""
    return LegacyRecord(
        id=record_id,
        category=category,
        raw_config={"api_key": f"key-{record_id}"} if raw_config is None else raw_config,
        owner_ref="user-1",
        name=f"{category} connection {record_id}",
        created_at=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=offset),
    )


@pytest.fixture
def config(tmp_path) -> MigratorConfig:
    return MigratorConfig(state=StateConfig(db_path=str(tmp_path / "state.db")))


@pytest.fixture
def db(config: MigratorConfig) -> Generator[Database, None, None]:
    database = Database.from_config(config.state)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def catalog() -> StaticCategoryCatalog:
    return StaticCategoryCatalog([ALPHA_ENTRY, BETA_ENTRY])


@pytest.fixture
def record_store(db: Database) -> LegacyRecordStore:
    return LegacyRecordStore(db)


@pytest.fixture
def seeded_records(record_store: LegacyRecordStore) -> list[LegacyRecord]:
    """3 alpha, 2 beta and 1 gamma record, in creation order."""
    counters: dict[str, int] = {}
    records = []
    for offset, category in enumerate(SEED_CATEGORIES):
        counters[category] = counters.get(category, 0) + 1
        records.append(make_record(f"{category}-{counters[category]}", category, offset=offset))
    record_store.add(records)
    return records


@pytest.fixture
def registry(db: Database) -> SQLResourceRegistry:
    return SQLResourceRegistry(db)


@pytest.fixture
def orchestrator(
    config: MigratorConfig,
    db: Database,
    registry: SQLResourceRegistry,
    catalog: StaticCategoryCatalog,
) -> MigrationOrchestrator:
    return MigrationOrchestrator(config, db, registry, catalog)
