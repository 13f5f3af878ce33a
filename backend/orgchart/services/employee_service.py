"""Cosmos DB employee store."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from typing import Any

from azure.cosmos import exceptions as cosmos_exceptions
from azure.cosmos.aio import CosmosClient
from pydantic import ValidationError as PydanticValidationError

from orgchart.core.cache import TTLCache, cache
from orgchart.core.config import Settings
from orgchart.core.errors import PersistenceError, SourceDataError, ValidationError
from orgchart.models.employee import DirectReport, EmployeePage, EmployeeRecord

logger = logging.getLogger(__name__)

ORGCHART_CACHE_PREFIX = "orgchart"

# Python attribute name -> Cosmos DB document key
_FIELD_MAP: list[tuple[str, str]] = [
    ("employee_id", "emp_id"),
    ("full_name", "full_name"),
    ("job_title", "job_title"),
    ("department", "dept"),
    ("business_unit", "bu"),
    ("business_unit_detail", "bu_org_3"),
    ("employment_category", "dl_idl_staff"),
    ("location", "location"),
    ("employment_type", "employee_type"),
    ("line_manager_raw", "line_manager"),
    ("is_direct_report", "is_direct"),
    ("joining_date", "joining_date"),
    ("last_working_day", "last_working_day"),
]

# Listing filter name -> (Cosmos DB document key, exact match)
EMPLOYEE_FILTERS: dict[str, tuple[str, bool]] = {
    "department": ("dept", False),
    "business_unit": ("bu", False),
    "employment_category": ("dl_idl_staff", True),
    "job_title": ("job_title", False),
    "location": ("location", False),
    "full_name": ("full_name", False),
    "employee_id": ("emp_id", False),
    "employment_type": ("employee_type", False),
    "line_manager": ("line_manager", False),
    "is_direct_report": ("is_direct", True),
}


def _filter_clause(filters: dict[str, str]) -> tuple[str, list[dict[str, Any]]]:
    """Parameterized WHERE clause; text filters match case-insensitive substrings."""
    clauses = ["1=1"]
    params: list[dict[str, Any]] = []
    for index, (name, value) in enumerate(filters.items()):
        if name not in EMPLOYEE_FILTERS:
            raise ValidationError(f"Unknown employee filter: {name}")
        value = value.strip()
        if not value:
            continue
        field, exact = EMPLOYEE_FILTERS[name]
        param = f"@p{index}"
        if name == "is_direct_report":
            value = DirectReport.parse(value).value
        if exact:
            clauses.append(f"c.{field} = {param}")
        else:
            clauses.append(f"CONTAINS(c.{field}, {param}, true)")
        params.append({"name": param, "value": value})
    return " AND ".join(clauses), params


def to_document(record: EmployeeRecord) -> dict[str, Any]:
    """Cosmos DB document for an employee record, keyed by its Emp ID."""
    values = record.model_dump(mode="json")
    doc: dict[str, Any] = {"id": record.employee_id.strip()}
    for python_key, cosmos_key in _FIELD_MAP:
        doc[cosmos_key] = values[python_key]
    return doc


class EmployeeService:
    def __init__(self, result_cache: TTLCache | None = None) -> None:
        self.client: CosmosClient | None = None
        self.container: Any = None
        self.initialized: bool = False
        self.cache = result_cache or cache

    async def initialize(self, settings: Settings) -> None:
        if self.initialized:
            return

        endpoint = settings.COSMOS_DB_ENDPOINT
        key = settings.COSMOS_DB_KEY
        database_name = settings.COSMOS_DB_DATABASE
        container_name = settings.COSMOS_DB_EMPLOYEES_CONTAINER

        if not endpoint or not key:
            logger.warning("Cosmos DB credentials missing — EmployeeService not initialized")
            return

        self.client = CosmosClient(endpoint, key)
        db = self.client.get_database_client(database_name)
        self.container = db.get_container_client(container_name)
        self.initialized = True
        logger.info("EmployeeService initialized (container=%s)", container_name)

    async def close(self) -> None:
        if self.client:
            await self.client.close()
            self.client = None
            self.container = None
            self.initialized = False

    async def list_employees(self, department: str | None = None) -> list[EmployeeRecord]:
        if not self.container:
            return []

        if department and department != "all":
            query = "SELECT * FROM c WHERE c.dept = @dept"
            params: list[dict[str, Any]] = [{"name": "@dept", "value": department}]
        else:
            query = "SELECT * FROM c"
            params = []

        items = await self._query(query, params, "list employees")
        return [self._transform_employee(item) for item in items]

    async def search_employees(
        self,
        filters: dict[str, str] | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> EmployeePage:
        """One page of employees matching ``filters``, ordered by full name."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        if not self.container:
            return EmployeePage(data=[], page=page, limit=limit, total=0, total_pages=0)

        where, params = _filter_clause(filters or {})
        items = await self._query(
            f"SELECT * FROM c WHERE {where} ORDER BY c.full_name ASC "
            f"OFFSET {(page - 1) * limit} LIMIT {limit}",
            params,
            "search employees",
        )
        counts = await self._query(f"SELECT VALUE COUNT(1) FROM c WHERE {where}", params, "count employees")
        total = int(counts[0]) if counts else 0

        return EmployeePage(
            data=[self._transform_employee(item) for item in items],
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
        )

    async def get_employee(self, employee_id: str) -> EmployeeRecord | None:
        if not self.container:
            return None

        query = "SELECT * FROM c WHERE c.id = @id OR c.emp_id = @id"
        params: list[dict[str, Any]] = [{"name": "@id", "value": employee_id}]

        items = await self._query(query, params, f"get employee {employee_id}")
        if not items:
            return None

        return self._transform_employee(items[0])

    async def upsert_employee(self, record: EmployeeRecord) -> EmployeeRecord:
        self._require_container()
        try:
            await self.container.upsert_item(body=to_document(record))
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to save employee {record.employee_id}: {e.message}") from e

        self.cache.invalidate_prefix(ORGCHART_CACHE_PREFIX)
        return record

    async def delete_employee(self, employee_id: str) -> bool:
        self._require_container()
        try:
            await self.container.delete_item(item=employee_id, partition_key=employee_id)
        except cosmos_exceptions.CosmosResourceNotFoundError:
            return False
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to delete employee {employee_id}: {e.message}") from e

        self.cache.invalidate_prefix(ORGCHART_CACHE_PREFIX)
        return True

    async def import_records(self, records: Iterable[EmployeeRecord]) -> tuple[int, int]:
        self._require_container()

        succeeded = 0
        failed = 0
        for record in records:
            try:
                await self.container.upsert_item(body=to_document(record))
                succeeded += 1
            except cosmos_exceptions.CosmosHttpResponseError:
                logger.exception("Failed to import employee %s", record.employee_id)
                failed += 1

        if succeeded:
            self.cache.invalidate_prefix(ORGCHART_CACHE_PREFIX)
        logger.info("Imported %d employees (%d failed)", succeeded, failed)
        return succeeded, failed

    async def check_connection(self) -> bool:
        if not self.container:
            return False
        try:
            query = "SELECT VALUE COUNT(1) FROM c"
            async for _ in self.container.query_items(
                query=query,
                enable_cross_partition_query=True,
            ):
                return True
            return True
        except Exception:
            logger.exception("Cosmos DB connection check failed")
            return False

    async def _query(self, query: str, params: list[dict[str, Any]], action: str) -> list[Any]:
        items: list[Any] = []
        try:
            async for item in self.container.query_items(
                query=query,
                parameters=params,
                enable_cross_partition_query=True,
            ):
                items.append(item)
        except cosmos_exceptions.CosmosHttpResponseError as e:
            raise PersistenceError(f"Failed to {action}: {e.message}") from e
        return items

    def _require_container(self) -> None:
        if not self.container:
            raise PersistenceError("Employee store is not configured")

    def _transform_employee(self, raw: dict[str, Any]) -> EmployeeRecord:
        data: dict[str, Any] = {}
        for python_key, cosmos_key in _FIELD_MAP:
            data[python_key] = raw.get(cosmos_key)

        # Fallback: documents created before emp_id was stored separately
        if not data.get("employee_id"):
            data["employee_id"] = raw.get("id") or ""

        try:
            return EmployeeRecord.model_validate(data)
        except PydanticValidationError as e:
            raise SourceDataError(f"Malformed employee document {raw.get('id')!r}: {e}") from e


employee_service = EmployeeService()
