from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from orgchart.api.v1.errors import http_error
from orgchart.core.dependencies import get_current_user
from orgchart.core.errors import ChartAccessDenied, ChartNotFound, OrgChartError
from orgchart.models.auth import UserInfo
from orgchart.models.chart import ChartCreateRequest, ChartDocument, ChartSummary, ChartUpdateRequest
from orgchart.services.chart_store import chart_store
from orgchart.services.editor_service import editor_service
from orgchart.services.hierarchy_service import hierarchy_service
from orgchart.services.node_codec import parse_nodes, serialize_nodes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orgcharts", tags=["orgcharts"])


async def _owned_chart(chart_id: str, user: UserInfo) -> ChartDocument:
    doc = await chart_store.get_chart(chart_id)
    if doc is None or not doc.visible_to(user.owner_key):
        raise ChartNotFound(chart_id)
    if not doc.owned_by(user.owner_key):
        raise ChartAccessDenied(chart_id)
    return doc


@router.get("", response_model=list[ChartSummary])
async def list_charts(user: UserInfo = Depends(get_current_user)):  # noqa: B008
    try:
        return await chart_store.list_charts(user.owner_key)
    except OrgChartError as err:
        logger.error("Failed to list charts for %s: %s", user.owner_key, err)
        raise http_error(err) from err


@router.post("", response_model=ChartDocument, status_code=status.HTTP_201_CREATED)
async def create_chart(
    request: ChartCreateRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        if request.nodes is not None:
            nodes = serialize_nodes(parse_nodes(request.nodes))
        elif request.seed_department:
            nodes = serialize_nodes(await hierarchy_service.get_hierarchy(request.seed_department))
        else:
            nodes = []

        doc = await chart_store.create_chart(
            username=user.owner_key,
            name=request.name,
            description=request.description,
            is_public=request.is_public,
            nodes=nodes,
        )
    except OrgChartError as err:
        logger.error("Failed to create chart for %s: %s", user.owner_key, err)
        raise http_error(err) from err

    return doc


@router.get("/{chart_id}", response_model=ChartDocument)
async def get_chart(
    chart_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        doc = await chart_store.get_chart(chart_id)
    except OrgChartError as err:
        logger.error("Failed to read chart %s: %s", chart_id, err)
        raise http_error(err) from err

    if doc is None or not doc.visible_to(user.owner_key):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Chart '{chart_id}' not found",
        )

    # older documents may still carry the legacy node layout
    try:
        doc.nodes = serialize_nodes(parse_nodes(doc.nodes))
    except OrgChartError as err:
        logger.error("Chart %s has unreadable nodes: %s", chart_id, err)
        raise http_error(err) from err
    return doc


@router.patch("/{chart_id}", response_model=ChartDocument)
async def update_chart(
    chart_id: str,
    request: ChartUpdateRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        await _owned_chart(chart_id, user)
        return await chart_store.update_chart(
            chart_id,
            name=request.name,
            description=request.description,
            is_public=request.is_public,
        )
    except OrgChartError as err:
        logger.error("Failed to update chart %s: %s", chart_id, err)
        raise http_error(err) from err


@router.delete("/{chart_id}")
async def delete_chart(
    chart_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        await _owned_chart(chart_id, user)
        await chart_store.delete_chart(chart_id)
    except OrgChartError as err:
        logger.error("Failed to delete chart %s: %s", chart_id, err)
        raise http_error(err) from err

    editor_service.close_chart(chart_id)
    return {"success": True}
