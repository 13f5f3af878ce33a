from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from orgchart.api.v1.errors import http_error
from orgchart.core.dependencies import get_current_user
from orgchart.core.errors import NodeNotFound, OrgChartError
from orgchart.models.auth import UserInfo
from orgchart.models.chart import (
    AddNodeRequest,
    AddTableRequest,
    MoveRequest,
    ReparentRequest,
    SaveResponse,
    SessionView,
    UpdateNodeRequest,
    UpdateTableRequest,
)
from orgchart.models.node import AnnotationTable
from orgchart.services.chart_editor import ChartSession
from orgchart.services.editor_service import editor_service
from orgchart.services.node_codec import serialize_node

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orgcharts/{chart_id}/session", tags=["editor"])


def _view(session: ChartSession) -> SessionView:
    return SessionView(
        chart_id=session.chart_id or "",
        state=session.state.value,
        nodes=session.serialize(),
        last_saved_at=session.last_saved_at,
    )


@router.post("", response_model=SessionView)
async def open_session(
    chart_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        session = await editor_service.open(user.owner_key, chart_id)
    except OrgChartError as err:
        logger.error("Failed to open chart %s for %s: %s", chart_id, user.owner_key, err)
        raise http_error(err) from err
    return _view(session)


@router.get("", response_model=SessionView)
async def get_session(
    chart_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        return _view(editor_service.get(user.owner_key, chart_id))
    except OrgChartError as err:
        raise http_error(err) from err


@router.delete("")
async def close_session(
    chart_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    return {"closed": editor_service.close(user.owner_key, chart_id)}


@router.post("/nodes", status_code=status.HTTP_201_CREATED)
async def add_node(
    chart_id: str,
    request: AddNodeRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        session = editor_service.get(user.owner_key, chart_id)
        node = session.add_node(request.template, request.parent_id)
    except OrgChartError as err:
        raise http_error(err) from err
    return serialize_node(node)


@router.patch("/nodes/{node_id}")
async def update_node(
    chart_id: str,
    node_id: str,
    request: UpdateNodeRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        session = editor_service.get(user.owner_key, chart_id)
        directory = None
        new_id = request.patch.get("id")
        if request.autofill and new_id and new_id != node_id:
            directory = await editor_service.directory()
        node = session.update_node(node_id, request.patch, directory=directory)
    except OrgChartError as err:
        logger.info("Update of %s on chart %s rejected: %s", node_id, chart_id, err)
        raise http_error(err) from err
    return serialize_node(node)


@router.delete("/nodes/{node_id}")
async def remove_node(
    chart_id: str,
    node_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        removed = editor_service.get(user.owner_key, chart_id).remove_node(node_id)
    except OrgChartError as err:
        raise http_error(err) from err
    return {"removed": removed}


@router.post("/nodes/{node_id}/reparent")
async def reparent_node(
    chart_id: str,
    node_id: str,
    request: ReparentRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        node = editor_service.get(user.owner_key, chart_id).reparent(node_id, request.new_parent_id)
    except OrgChartError as err:
        logger.info("Reparent of %s on chart %s rejected: %s", node_id, chart_id, err)
        raise http_error(err) from err
    return serialize_node(node)


@router.post("/nodes/{node_id}/move")
async def move_node(
    chart_id: str,
    node_id: str,
    request: MoveRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        moved = editor_service.get(user.owner_key, chart_id).move_sibling(node_id, request.direction)
    except OrgChartError as err:
        raise http_error(err) from err
    return {"moved": moved}


@router.post("/tables", status_code=status.HTTP_201_CREATED)
async def add_table(
    chart_id: str,
    request: AddTableRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        table = editor_service.get(user.owner_key, chart_id).add_table(
            x=request.x,
            y=request.y,
            width=request.width,
            height=request.height,
            headers=request.headers,
            rows=request.rows,
        )
    except OrgChartError as err:
        raise http_error(err) from err
    return serialize_node(table)


@router.patch("/tables/{table_id}")
async def update_table(
    chart_id: str,
    table_id: str,
    request: UpdateTableRequest,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        session = editor_service.get(user.owner_key, chart_id)
        if not isinstance(session.get(table_id), AnnotationTable):
            raise NodeNotFound(table_id)
        table = session.update_node(table_id, request.model_dump(exclude_none=True))
    except OrgChartError as err:
        raise http_error(err) from err
    return serialize_node(table)


@router.post("/save", response_model=SaveResponse)
async def save_session(
    chart_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        session = editor_service.get(user.owner_key, chart_id)
        result = await editor_service.save(user.owner_key, chart_id)
    except OrgChartError as err:
        logger.error("Saving chart %s for %s failed: %s", chart_id, user.owner_key, err)
        raise http_error(err) from err

    return SaveResponse(
        saved=result.saved,
        node_count=result.node_count,
        saved_at=result.saved_at,
        state=session.state.value,
    )
