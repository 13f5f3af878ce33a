"""Cosmos DB chart document store."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from azure.cosmos import exceptions as cosmos_exceptions
from azure.cosmos.aio import CosmosClient
from pydantic import ValidationError as PydanticValidationError

from orgchart.core.config import Settings
from orgchart.core.errors import ChartNotFound, PersistenceError
from orgchart.models.chart import ChartDocument, ChartSummary

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChartStore:
    def __init__(self) -> None:
        self.client: CosmosClient | None = None
        self.container: Any = None
        self.initialized: bool = False

    async def initialize(self, settings: Settings) -> None:
        if self.initialized:
            return

        if not settings.COSMOS_DB_ENDPOINT or not settings.COSMOS_DB_KEY:
            logger.warning("Cosmos DB credentials missing — ChartStore not initialized")
            return

        self.client = CosmosClient(settings.COSMOS_DB_ENDPOINT, settings.COSMOS_DB_KEY)
        db = self.client.get_database_client(settings.COSMOS_DB_DATABASE)
        self.container = db.get_container_client(settings.COSMOS_DB_CHARTS_CONTAINER)
        self.initialized = True
        logger.info("ChartStore initialized (container=%s)", settings.COSMOS_DB_CHARTS_CONTAINER)

    async def close(self) -> None:
        if self.client:
            await self.client.close()
            self.client = None
            self.container = None
            self.initialized = False

    async def list_charts(self, username: str) -> list[ChartSummary]:
        if not self.container:
            return []

        query = (
            "SELECT c.id, c.name, c.description, c.username, c.is_public, c.created_at, c.updated_at "
            "FROM c WHERE c.username = @username OR c.is_public = true"
        )
        params: list[dict[str, Any]] = [{"name": "@username", "value": username}]

        charts: list[ChartSummary] = []
        try:
            async for item in self.container.query_items(
                query=query,
                parameters=params,
                enable_cross_partition_query=True,
            ):
                charts.append(ChartSummary.model_validate(item))
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to list charts: {e.message}") from e

        return charts

    async def get_chart(self, chart_id: str) -> ChartDocument | None:
        if not self.container:
            return None

        try:
            item = await self.container.read_item(item=chart_id, partition_key=chart_id)
        except cosmos_exceptions.CosmosResourceNotFoundError:
            return None
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to read chart {chart_id}: {e.message}") from e

        try:
            return ChartDocument.model_validate(item)
        except PydanticValidationError as e:
            raise PersistenceError(f"Chart {chart_id} is corrupt: {e}") from e

    async def create_chart(
        self,
        username: str,
        name: str,
        description: str = "",
        is_public: bool = False,
        nodes: list[dict[str, Any]] | None = None,
    ) -> ChartDocument:
        self._require_container()

        now = _now()
        body: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "username": username,
            "is_public": is_public,
            "nodes": nodes or [],
            "created_at": now,
            "updated_at": now,
        }
        try:
            created = await self.container.create_item(body=body)
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to create chart: {e.message}") from e

        logger.info("Chart %s created by %s (%d nodes)", body["id"], username, len(body["nodes"]))
        return ChartDocument.model_validate(created or body)

    async def put_chart(self, chart_id: str, nodes: list[dict[str, Any]]) -> None:
        await self._patch(chart_id, {"nodes": nodes})

    async def update_chart(
        self,
        chart_id: str,
        name: str | None = None,
        description: str | None = None,
        is_public: bool | None = None,
    ) -> ChartDocument:
        changes: dict[str, Any] = {}
        if name:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if is_public is not None:
            changes["is_public"] = is_public
        return await self._patch(chart_id, changes)

    async def delete_chart(self, chart_id: str) -> bool:
        self._require_container()
        try:
            await self.container.delete_item(item=chart_id, partition_key=chart_id)
        except cosmos_exceptions.CosmosResourceNotFoundError:
            return False
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to delete chart {chart_id}: {e.message}") from e
        logger.info("Chart %s deleted", chart_id)
        return True

    async def check_connection(self) -> bool:
        if not self.container:
            return False
        try:
            await self.container.read()
            return True
        except Exception:
            logger.exception("Chart container connection check failed")
            return False

    async def _patch(self, chart_id: str, changes: dict[str, Any]) -> ChartDocument:
        self._require_container()
        try:
            item = await self.container.read_item(item=chart_id, partition_key=chart_id)
        except cosmos_exceptions.CosmosResourceNotFoundError as e:
            raise ChartNotFound(chart_id) from e
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to read chart {chart_id}: {e.message}") from e

        item.update(changes)
        item["updated_at"] = _now()
        try:
            await self.container.replace_item(item=chart_id, body=item)
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to update chart {chart_id}: {e.message}") from e

        return ChartDocument.model_validate(item)

    def _require_container(self) -> None:
        if not self.container:
            raise PersistenceError("Chart store is not configured")


chart_store = ChartStore()
