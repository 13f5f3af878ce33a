from __future__ import annotations

import logging

from orgchart.core.cache import TTLCache, cache
from orgchart.core.config import Settings, settings
from orgchart.models.node import Node
from orgchart.services.employee_service import ORGCHART_CACHE_PREFIX, EmployeeService, employee_service
from orgchart.services.hierarchy_builder import ALL_DEPARTMENTS, build_hierarchy, list_departments

logger = logging.getLogger(__name__)


def hierarchy_cache_key(department: str | None) -> str:
    if not department or department == ALL_DEPARTMENTS:
        return f"{ORGCHART_CACHE_PREFIX}:all"
    return f"{ORGCHART_CACHE_PREFIX}:dept:{department}"


class HierarchyService:
    def __init__(
        self,
        employees: EmployeeService | None = None,
        result_cache: TTLCache | None = None,
        config: Settings | None = None,
    ) -> None:
        self.employees = employees or employee_service
        self.cache = result_cache or cache
        self.settings = config or settings

    async def get_hierarchy(self, department: str | None = None) -> list[Node]:
        async def compute() -> list[Node]:
            records = await self.employees.list_employees(department)
            return build_hierarchy(
                records,
                department,
                image_base_url=self.settings.EMPLOYEE_IMAGE_BASE_URL,
            )

        return await self.cache.get_or_compute(
            hierarchy_cache_key(department),
            self.settings.ORGCHART_CACHE_TTL_SECONDS,
            compute,
        )

    async def get_departments(self) -> list[str]:
        async def compute() -> list[str]:
            return list_departments(await self.employees.list_employees())

        return await self.cache.get_or_compute(
            f"{ORGCHART_CACHE_PREFIX}:departments",
            self.settings.ORGCHART_CACHE_TTL_SECONDS,
            compute,
        )

    async def directory(self) -> dict[str, Node]:
        """Person nodes of the full hierarchy keyed by id, for rename auto-fill."""
        nodes = await self.get_hierarchy()
        return {n.id: n for n in nodes if n.kind == "person"}


hierarchy_service = HierarchyService()
