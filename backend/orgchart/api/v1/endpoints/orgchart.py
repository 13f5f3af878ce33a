from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from orgchart.api.v1.errors import http_error
from orgchart.core.dependencies import get_current_user
from orgchart.core.errors import OrgChartError
from orgchart.models.auth import UserInfo
from orgchart.models.chart import HierarchyResponse
from orgchart.services.hierarchy_builder import ALL_DEPARTMENTS
from orgchart.services.hierarchy_service import hierarchy_service
from orgchart.services.node_codec import serialize_nodes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orgchart", tags=["orgchart"])


@router.get("", response_model=HierarchyResponse)
async def get_orgchart(
    department: str = ALL_DEPARTMENTS,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        nodes = await hierarchy_service.get_hierarchy(department)
    except OrgChartError as err:
        logger.error("Failed to build org chart (department=%s): %s", department, err)
        raise http_error(err) from err

    return HierarchyResponse(
        data=serialize_nodes(nodes),
        timestamp=datetime.now(timezone.utc),
        department=department,
    )


@router.get("/departments", response_model=list[str])
async def get_departments(user: UserInfo = Depends(get_current_user)):  # noqa: B008
    try:
        return await hierarchy_service.get_departments()
    except OrgChartError as err:
        logger.error("Failed to list departments: %s", err)
        raise http_error(err) from err
