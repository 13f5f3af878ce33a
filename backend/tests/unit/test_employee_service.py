from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from azure.cosmos import exceptions as cosmos_exceptions

from orgchart.core.cache import TTLCache
from orgchart.core.errors import PersistenceError, SourceDataError, ValidationError
from orgchart.models.employee import DirectReport, EmployeeRecord
from orgchart.services.employee_service import EmployeeService, to_document

SAMPLE_COSMOS_DOC = {
    "id": "00042",
    "emp_id": "00042",
    "full_name": "Doe, John",
    "job_title": "Senior Developer",
    "dept": "Engineering",
    "bu": "R&D",
    "bu_org_3": "Platform",
    "dl_idl_staff": "Staff",
    "location": "Hanoi",
    "employee_type": "Permanent",
    "line_manager": "00007: Smith, Jane",
    "is_direct": "No",
    "joining_date": "2024-03-01",
    "last_working_day": None,
}


def _service_with_items(*items):
    service = EmployeeService(result_cache=TTLCache())
    service.initialized = True

    mock_container = MagicMock()
    captured: dict = {}

    async def mock_query_items(**kwargs):
        captured.update(kwargs)
        for item in items:
            yield item

    mock_container.query_items = mock_query_items
    service.container = mock_container
    return service, captured


def test_transform_employee_maps_fields():
    service = EmployeeService()
    result = service._transform_employee(SAMPLE_COSMOS_DOC)

    assert isinstance(result, EmployeeRecord)
    assert result.employee_id == "00042"
    assert result.full_name == "Doe, John"
    assert result.job_title == "Senior Developer"
    assert result.department == "Engineering"
    assert result.business_unit == "R&D"
    assert result.business_unit_detail == "Platform"
    assert result.employment_category == "Staff"
    assert result.location == "Hanoi"
    assert result.employment_type == "Permanent"
    assert result.line_manager_raw == "00007: Smith, Jane"
    assert result.is_direct_report == DirectReport.NO
    assert result.joining_date == date(2024, 3, 1)
    assert result.last_working_day is None


def test_transform_employee_falls_back_to_document_id():
    service = EmployeeService()
    result = service._transform_employee({"id": "77", "full_name": "Legacy"})
    assert result.employee_id == "77"
    assert result.is_direct_report == DirectReport.UNSPECIFIED


def test_transform_employee_rejects_malformed_document():
    service = EmployeeService()
    with pytest.raises(SourceDataError):
        service._transform_employee({"id": "1", "joining_date": "yesterday-ish"})


def test_to_document_round_trips_through_transform():
    record = EmployeeService()._transform_employee(SAMPLE_COSMOS_DOC)
    doc = to_document(record)

    assert doc["id"] == "00042"
    assert doc["dept"] == "Engineering"
    assert doc["is_direct"] == "no"
    assert doc["joining_date"] == "2024-03-01"
    assert EmployeeService()._transform_employee(doc) == record


@pytest.mark.anyio
async def test_list_employees_all():
    service, captured = _service_with_items(SAMPLE_COSMOS_DOC, {"id": "2", "emp_id": "2"})

    result = await service.list_employees()

    assert [r.employee_id for r in result] == ["00042", "2"]
    assert captured["query"] == "SELECT * FROM c"
    assert captured["enable_cross_partition_query"] is True


@pytest.mark.anyio
async def test_list_employees_filters_by_department():
    service, captured = _service_with_items(SAMPLE_COSMOS_DOC)

    await service.list_employees("Engineering")

    assert "c.dept = @dept" in captured["query"]
    assert captured["parameters"] == [{"name": "@dept", "value": "Engineering"}]


@pytest.mark.anyio
async def test_list_employees_not_initialized():
    assert await EmployeeService().list_employees() == []


@pytest.mark.anyio
async def test_get_employee_found_and_missing():
    service, _ = _service_with_items(SAMPLE_COSMOS_DOC)
    found = await service.get_employee("00042")
    assert found is not None
    assert found.full_name == "Doe, John"

    empty, _ = _service_with_items()
    assert await empty.get_employee("nope") is None


@pytest.mark.anyio
async def test_upsert_invalidates_orgchart_cache():
    service, _ = _service_with_items()
    service.container.upsert_item = AsyncMock()
    service.cache.set("orgchart:all", ["stale"], ttl=60)
    service.cache.set("jwks:t", {"keys": []}, ttl=60)

    record = EmployeeRecord(employee_id="5", full_name="New")
    await service.upsert_employee(record)

    service.container.upsert_item.assert_awaited_once()
    assert service.container.upsert_item.call_args.kwargs["body"]["id"] == "5"
    assert service.cache.get("orgchart:all") is None
    assert service.cache.get("jwks:t") == {"keys": []}


@pytest.mark.anyio
async def test_upsert_failure_raises_persistence_error():
    service, _ = _service_with_items()
    service.container.upsert_item = AsyncMock(
        side_effect=cosmos_exceptions.CosmosHttpResponseError(status_code=503, message="unavailable")
    )
    service.cache.set("orgchart:all", ["kept"], ttl=60)

    with pytest.raises(PersistenceError):
        await service.upsert_employee(EmployeeRecord(employee_id="5"))
    assert service.cache.get("orgchart:all") == ["kept"]


@pytest.mark.anyio
async def test_delete_employee():
    service, _ = _service_with_items()
    service.container.delete_item = AsyncMock()
    service.cache.set("orgchart:dept:Eng", ["stale"], ttl=60)

    assert await service.delete_employee("5") is True
    assert service.cache.get("orgchart:dept:Eng") is None

    service.container.delete_item = AsyncMock(
        side_effect=cosmos_exceptions.CosmosResourceNotFoundError(status_code=404, message="gone")
    )
    assert await service.delete_employee("5") is False


@pytest.mark.anyio
async def test_write_without_store_raises():
    with pytest.raises(PersistenceError):
        await EmployeeService().upsert_employee(EmployeeRecord(employee_id="1"))


@pytest.mark.anyio
async def test_import_records_counts_failures():
    service, _ = _service_with_items()
    service.container.upsert_item = AsyncMock(
        side_effect=[None, cosmos_exceptions.CosmosHttpResponseError(status_code=429, message="throttled"), None]
    )
    service.cache.set("orgchart:all", ["stale"], ttl=60)

    records = [EmployeeRecord(employee_id=str(i)) for i in range(3)]
    assert await service.import_records(records) == (2, 1)
    assert service.cache.get("orgchart:all") is None


@pytest.mark.anyio
async def test_check_connection():
    service, _ = _service_with_items({"count": 3})
    assert await service.check_connection() is True
    assert await EmployeeService().check_connection() is False


def _failing_service(status_code=503):
    service = EmployeeService(result_cache=TTLCache())
    service.initialized = True

    async def mock_query_items(**kwargs):
        raise cosmos_exceptions.CosmosHttpResponseError(status_code=status_code, message="unavailable")
        yield  # pragma: no cover

    service.container = MagicMock()
    service.container.query_items = mock_query_items
    return service


@pytest.mark.anyio
async def test_read_failures_raise_persistence_error():
    service = _failing_service()

    with pytest.raises(PersistenceError):
        await service.list_employees()
    with pytest.raises(PersistenceError):
        await service.get_employee("00042")
    with pytest.raises(PersistenceError):
        await service.search_employees({"department": "Eng"})


def _search_service(page_items, total):
    service = EmployeeService(result_cache=TTLCache())
    service.initialized = True
    calls: list[dict] = []

    async def mock_query_items(**kwargs):
        calls.append(kwargs)
        rows = [total] if "COUNT(1)" in kwargs["query"] else page_items
        for row in rows:
            yield row

    service.container = MagicMock()
    service.container.query_items = mock_query_items
    return service, calls


@pytest.mark.anyio
async def test_search_employees_builds_filtered_page_query():
    service, calls = _search_service([SAMPLE_COSMOS_DOC], total=51)

    page = await service.search_employees(
        {"department": "Eng", "employment_category": "Staff", "is_direct_report": "No", "location": " "},
        page=3,
        limit=20,
    )

    assert [r.employee_id for r in page.data] == ["00042"]
    assert (page.page, page.limit, page.total, page.total_pages) == (3, 20, 51, 3)

    data_query, count_query = calls
    assert "CONTAINS(c.dept, @p0, true)" in data_query["query"]
    assert "c.dl_idl_staff = @p1" in data_query["query"]
    assert "c.is_direct = @p2" in data_query["query"]
    assert "location" not in data_query["query"]
    assert data_query["query"].endswith("ORDER BY c.full_name ASC OFFSET 40 LIMIT 20")
    assert data_query["parameters"] == [
        {"name": "@p0", "value": "Eng"},
        {"name": "@p1", "value": "Staff"},
        {"name": "@p2", "value": "no"},
    ]
    assert count_query["query"].startswith("SELECT VALUE COUNT(1) FROM c WHERE 1=1 AND")
    assert count_query["parameters"] == data_query["parameters"]


@pytest.mark.anyio
async def test_search_employees_rejects_unknown_filter_and_bad_paging():
    service, _ = _search_service([], total=0)

    with pytest.raises(ValidationError):
        await service.search_employees({"salary": "1"})
    with pytest.raises(ValidationError):
        await service.search_employees(page=0)


@pytest.mark.anyio
async def test_search_employees_not_initialized():
    page = await EmployeeService().search_employees(page=2, limit=10)
    assert page.data == []
    assert page.total == 0
