from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from azure.cosmos import exceptions as cosmos_exceptions

from orgchart.core.errors import ChartNotFound, PersistenceError
from orgchart.services.chart_store import ChartStore

CHART_DOC = {
    "id": "chart-1",
    "name": "Engineering",
    "description": "Q3 plan",
    "username": "alice@example.com",
    "is_public": False,
    "nodes": [{"kind": "person", "id": "1"}],
    "created_at": "2024-05-01T10:00:00+00:00",
    "updated_at": "2024-05-01T10:00:00+00:00",
    "_etag": "abc",
}


def _store():
    store = ChartStore()
    store.initialized = True
    store.container = MagicMock()
    return store


def _not_found():
    return cosmos_exceptions.CosmosResourceNotFoundError(status_code=404, message="missing")


@pytest.mark.anyio
async def test_list_charts_queries_owner_or_public():
    store = _store()
    captured: dict = {}

    async def mock_query_items(**kwargs):
        captured.update(kwargs)
        yield {k: v for k, v in CHART_DOC.items() if k != "nodes"}

    store.container.query_items = mock_query_items

    charts = await store.list_charts("alice@example.com")

    assert [c.id for c in charts] == ["chart-1"]
    assert "c.username = @username OR c.is_public = true" in captured["query"]
    assert captured["parameters"] == [{"name": "@username", "value": "alice@example.com"}]


@pytest.mark.anyio
async def test_get_chart_found_and_missing():
    store = _store()
    store.container.read_item = AsyncMock(return_value=dict(CHART_DOC))

    doc = await store.get_chart("chart-1")
    assert doc.name == "Engineering"
    assert doc.nodes == [{"kind": "person", "id": "1"}]
    assert doc.visible_to("alice@example.com")
    assert not doc.visible_to("bob@example.com")

    store.container.read_item = AsyncMock(side_effect=_not_found())
    assert await store.get_chart("chart-1") is None


@pytest.mark.anyio
async def test_get_chart_without_store_returns_none():
    assert await ChartStore().get_chart("chart-1") is None


@pytest.mark.anyio
async def test_create_chart_assigns_id_and_owner():
    store = _store()
    store.container.create_item = AsyncMock(side_effect=lambda body: body)

    doc = await store.create_chart("alice@example.com", "New chart", nodes=[{"kind": "person", "id": "1"}])

    body = store.container.create_item.call_args.kwargs["body"]
    assert body["username"] == "alice@example.com"
    assert body["id"]
    assert body["created_at"] == body["updated_at"]
    assert doc.id == body["id"]
    assert doc.nodes == [{"kind": "person", "id": "1"}]


@pytest.mark.anyio
async def test_put_chart_replaces_nodes_and_touches_timestamp():
    store = _store()
    store.container.read_item = AsyncMock(return_value=dict(CHART_DOC))
    store.container.replace_item = AsyncMock()

    await store.put_chart("chart-1", [{"kind": "person", "id": "2"}])

    body = store.container.replace_item.call_args.kwargs["body"]
    assert body["nodes"] == [{"kind": "person", "id": "2"}]
    assert body["name"] == "Engineering"
    assert body["updated_at"] != CHART_DOC["updated_at"]


@pytest.mark.anyio
async def test_put_chart_missing_raises_chart_not_found():
    store = _store()
    store.container.read_item = AsyncMock(side_effect=_not_found())

    with pytest.raises(ChartNotFound):
        await store.put_chart("chart-1", [])


@pytest.mark.anyio
async def test_put_chart_write_failure_raises_persistence_error():
    store = _store()
    store.container.read_item = AsyncMock(return_value=dict(CHART_DOC))
    store.container.replace_item = AsyncMock(
        side_effect=cosmos_exceptions.CosmosHttpResponseError(status_code=412, message="precondition failed")
    )

    with pytest.raises(PersistenceError):
        await store.put_chart("chart-1", [])


@pytest.mark.anyio
async def test_update_chart_only_changes_given_fields():
    store = _store()
    store.container.read_item = AsyncMock(return_value=dict(CHART_DOC))
    store.container.replace_item = AsyncMock()

    doc = await store.update_chart("chart-1", is_public=True)

    assert doc.is_public is True
    assert doc.name == "Engineering"
    assert doc.description == "Q3 plan"


@pytest.mark.anyio
async def test_delete_chart():
    store = _store()
    store.container.delete_item = AsyncMock()
    assert await store.delete_chart("chart-1") is True

    store.container.delete_item = AsyncMock(side_effect=_not_found())
    assert await store.delete_chart("chart-1") is False


@pytest.mark.anyio
async def test_writes_without_store_raise():
    with pytest.raises(PersistenceError):
        await ChartStore().create_chart("alice", "x")
    with pytest.raises(PersistenceError):
        await ChartStore().put_chart("chart-1", [])
