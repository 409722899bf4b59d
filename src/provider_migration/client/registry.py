"""Resource registry clients.

The executor creates canonical providers (targets) and their models
(sub-resources) through the ``ResourceRegistry`` protocol. Two
implementations are provided:

- ``SQLResourceRegistry`` keeps providers in the state database
- ``HTTPResourceRegistryClient`` talks to a registry REST API
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx
from sqlalchemy import select

from provider_migration.client.base_client import BaseRegistryClient
from provider_migration.client.exceptions import ConflictError, NotFoundError
from provider_migration.config import RegistryConfig
from provider_migration.migration.database import Database
from provider_migration.migration.models import SubResourceRow, TargetResourceRow
from provider_migration.utils.logging import get_logger
from provider_migration.utils.retry import retry_api_call

logger = get_logger(__name__)


@dataclass
class TargetResource:
    """A canonical provider as stored by the registry."""

    id: str
    identifier: str
    name: str
    definition: dict[str, Any] = field(default_factory=dict)


@dataclass
class SubResource:
    """A model attached to a canonical provider."""

    id: str
    target_id: str
    identifier: str
    definition: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ResourceRegistry(Protocol):
    """Create/read/update/delete canonical providers and their models.

    Lookups of unknown ids raise NotFoundError. Creating a provider whose
    identifier is taken raises ConflictError.
    """

    async def find_target(self, identifier: str) -> TargetResource | None: ...

    async def get_target(self, target_id: str) -> TargetResource: ...

    async def create_target(self, definition: dict[str, Any]) -> TargetResource: ...

    async def update_target(self, target_id: str, definition: dict[str, Any]) -> TargetResource: ...

    async def delete_target(self, target_id: str) -> None: ...

    async def list_sub_resources(self, target_id: str) -> list[SubResource]: ...

    async def create_sub_resource(
        self, target_id: str, definition: dict[str, Any]
    ) -> SubResource: ...

    async def get_sub_resource(self, sub_resource_id: str) -> SubResource: ...

    async def delete_sub_resource(self, sub_resource_id: str) -> None: ...

    async def close(self) -> None: ...


def _target_from_row(row: TargetResourceRow) -> TargetResource:
    return TargetResource(
        id=row.id, identifier=row.identifier, name=row.name, definition=dict(row.definition)
    )


def _sub_from_row(row: SubResourceRow) -> SubResource:
    return SubResource(
        id=row.id,
        target_id=row.target_id,
        identifier=row.identifier,
        definition=dict(row.definition),
    )


class SQLResourceRegistry:
    """Registry backed by the ``target_resources``/``sub_resources`` tables."""

    def __init__(self, db: Database):
        self.db = db

    async def find_target(self, identifier: str) -> TargetResource | None:
        with self.db.session() as session:
            row = session.scalars(
                select(TargetResourceRow).where(TargetResourceRow.identifier == identifier)
            ).first()
            return _target_from_row(row) if row else None

    async def get_target(self, target_id: str) -> TargetResource:
        with self.db.session() as session:
            row = session.get(TargetResourceRow, target_id)
            if row is None:
                raise NotFoundError(f"Provider not found: {target_id}", status_code=404)
            return _target_from_row(row)

    async def create_target(self, definition: dict[str, Any]) -> TargetResource:
        identifier = definition["identifier"]
        with self.db.session() as session:
            existing = session.scalars(
                select(TargetResourceRow).where(TargetResourceRow.identifier == identifier)
            ).first()
            if existing is not None:
                raise ConflictError(
                    f"Provider already exists: {identifier}",
                    status_code=409,
                    response={"id": existing.id},
                )

            row = TargetResourceRow(
                id=str(uuid.uuid4()),
                identifier=identifier,
                name=definition["name"],
                definition=dict(definition),
            )
            session.add(row)
            session.flush()
            target = _target_from_row(row)

        logger.info("provider_created", target_id=target.id, identifier=identifier)
        return target

    async def update_target(self, target_id: str, definition: dict[str, Any]) -> TargetResource:
        with self.db.session() as session:
            row = session.get(TargetResourceRow, target_id)
            if row is None:
                raise NotFoundError(f"Provider not found: {target_id}", status_code=404)
            row.name = definition.get("name", row.name)
            row.definition = dict(definition)
            session.flush()
            target = _target_from_row(row)

        logger.info("provider_updated", target_id=target_id, identifier=target.identifier)
        return target

    async def delete_target(self, target_id: str) -> None:
        with self.db.session() as session:
            row = session.get(TargetResourceRow, target_id)
            if row is None:
                raise NotFoundError(f"Provider not found: {target_id}", status_code=404)
            session.delete(row)

        logger.info("provider_deleted", target_id=target_id)

    async def list_sub_resources(self, target_id: str) -> list[SubResource]:
        with self.db.session() as session:
            rows = session.scalars(
                select(SubResourceRow).where(SubResourceRow.target_id == target_id)
            ).all()
            return [_sub_from_row(row) for row in rows]

    async def create_sub_resource(self, target_id: str, definition: dict[str, Any]) -> SubResource:
        identifier = definition["identifier"]
        with self.db.session() as session:
            if session.get(TargetResourceRow, target_id) is None:
                raise NotFoundError(f"Provider not found: {target_id}", status_code=404)

            existing = session.scalars(
                select(SubResourceRow).where(
                    SubResourceRow.target_id == target_id,
                    SubResourceRow.identifier == identifier,
                )
            ).first()
            if existing is not None:
                raise ConflictError(
                    f"Model already exists: {identifier}",
                    status_code=409,
                    response={"id": existing.id},
                )

            row = SubResourceRow(
                id=str(uuid.uuid4()),
                target_id=target_id,
                identifier=identifier,
                definition=dict(definition),
            )
            session.add(row)
            session.flush()
            sub = _sub_from_row(row)

        logger.info("model_created", sub_resource_id=sub.id, target_id=target_id)
        return sub

    async def get_sub_resource(self, sub_resource_id: str) -> SubResource:
        with self.db.session() as session:
            row = session.get(SubResourceRow, sub_resource_id)
            if row is None:
                raise NotFoundError(f"Model not found: {sub_resource_id}", status_code=404)
            return _sub_from_row(row)

    async def delete_sub_resource(self, sub_resource_id: str) -> None:
        with self.db.session() as session:
            row = session.get(SubResourceRow, sub_resource_id)
            if row is None:
                raise NotFoundError(f"Model not found: {sub_resource_id}", status_code=404)
            session.delete(row)

        logger.info("model_deleted", sub_resource_id=sub_resource_id)

    async def close(self) -> None:
        pass


def _results(payload: Any) -> list[dict[str, Any]]:
    """Accept both paginated ``{"results": [...]}`` and bare list bodies."""
    if isinstance(payload, dict):
        return list(payload.get("results", []))
    return list(payload or [])


def _target_from_json(data: dict[str, Any]) -> TargetResource:
    definition = {k: v for k, v in data.items() if k != "id"}
    return TargetResource(
        id=str(data["id"]),
        identifier=data["identifier"],
        name=data.get("name", data["identifier"]),
        definition=definition,
    )


def _sub_from_json(data: dict[str, Any], target_id: str | None = None) -> SubResource:
    definition = {k: v for k, v in data.items() if k not in ("id", "provider_id")}
    return SubResource(
        id=str(data["id"]),
        target_id=str(data.get("provider_id") or target_id or ""),
        identifier=data["identifier"],
        definition=definition,
    )


class HTTPResourceRegistryClient(BaseRegistryClient):
    """Registry REST API client.

    Endpoints (relative to the configured base URL):
        GET    providers/?identifier=<identifier>
        GET    providers/<id>/
        POST   providers/
        PUT    providers/<id>/
        DELETE providers/<id>/
        GET    providers/<id>/models/
        POST   providers/<id>/models/
        GET    models/<id>/
        DELETE models/<id>/
    """

    @classmethod
    def from_config(
        cls, config: RegistryConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> "HTTPResourceRegistryClient":
        if not config.url or not config.token:
            raise ValueError("HTTP registry needs both url and token")
        return cls(
            base_url=config.url,
            token=config.token,
            verify_ssl=config.verify_ssl,
            timeout=config.timeout,
            rate_limit=config.rate_limit,
            log_payloads=config.log_payloads,
            transport=transport,
        )

    @retry_api_call
    async def find_target(self, identifier: str) -> TargetResource | None:
        matches = _results(await self.get("providers/", params={"identifier": identifier}))
        for data in matches:
            if data.get("identifier") == identifier:
                return _target_from_json(data)
        return None

    @retry_api_call
    async def get_target(self, target_id: str) -> TargetResource:
        return _target_from_json(await self.get(f"providers/{target_id}/"))

    @retry_api_call
    async def create_target(self, definition: dict[str, Any]) -> TargetResource:
        target = _target_from_json(await self.post("providers/", json_data=definition))
        logger.info("provider_created", target_id=target.id, identifier=target.identifier)
        return target

    @retry_api_call
    async def update_target(self, target_id: str, definition: dict[str, Any]) -> TargetResource:
        return _target_from_json(await self.put(f"providers/{target_id}/", json_data=definition))

    @retry_api_call
    async def delete_target(self, target_id: str) -> None:
        await self.delete(f"providers/{target_id}/")

    @retry_api_call
    async def list_sub_resources(self, target_id: str) -> list[SubResource]:
        payload = await self.get(f"providers/{target_id}/models/")
        return [_sub_from_json(data, target_id) for data in _results(payload)]

    @retry_api_call
    async def create_sub_resource(self, target_id: str, definition: dict[str, Any]) -> SubResource:
        data = await self.post(f"providers/{target_id}/models/", json_data=definition)
        return _sub_from_json(data, target_id)

    @retry_api_call
    async def get_sub_resource(self, sub_resource_id: str) -> SubResource:
        return _sub_from_json(await self.get(f"models/{sub_resource_id}/"))

    @retry_api_call
    async def delete_sub_resource(self, sub_resource_id: str) -> None:
        await self.delete(f"models/{sub_resource_id}/")


def create_registry(config: RegistryConfig, db: Database) -> ResourceRegistry:
    """Build the registry selected by ``config.mode``."""
    if config.mode == "http":
        return HTTPResourceRegistryClient.from_config(config)
    return SQLResourceRegistry(db)
