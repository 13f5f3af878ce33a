"""Per-user editing sessions over stored chart documents."""

from __future__ import annotations

import logging

from orgchart.core.errors import ChartAccessDenied, ChartNotFound, SessionNotOpen
from orgchart.models.chart import ChartDocument
from orgchart.models.node import Node
from orgchart.services.chart_editor import ChartSession, SaveResult
from orgchart.services.chart_store import ChartStore, chart_store
from orgchart.services.hierarchy_service import HierarchyService, hierarchy_service

logger = logging.getLogger(__name__)


class EditorService:
    def __init__(
        self,
        store: ChartStore | None = None,
        hierarchy: HierarchyService | None = None,
    ) -> None:
        self.store = store or chart_store
        self.hierarchy = hierarchy or hierarchy_service
        self.sessions: dict[tuple[str, str], ChartSession] = {}

    async def load_document(self, username: str, chart_id: str) -> ChartDocument:
        doc = await self.store.get_chart(chart_id)
        if doc is None or not doc.visible_to(username):
            raise ChartNotFound(chart_id)
        return doc

    async def open(self, username: str, chart_id: str) -> ChartSession:
        doc = await self.load_document(username, chart_id)
        if not doc.owned_by(username):
            raise ChartAccessDenied(chart_id)

        session = ChartSession(chart_id)
        session.load(doc.nodes)
        # reopening discards any unsaved edits of a previous session
        previous = self.sessions.get((username, chart_id))
        if previous is not None and previous.is_dirty:
            logger.warning("Discarding unsaved edits on chart %s for %s", chart_id, username)
        self.sessions[(username, chart_id)] = session
        return session

    def get(self, username: str, chart_id: str) -> ChartSession:
        session = self.sessions.get((username, chart_id))
        if session is None:
            raise SessionNotOpen(chart_id)
        return session

    async def save(self, username: str, chart_id: str) -> SaveResult:
        return await self.get(username, chart_id).save(self.store)

    def close(self, username: str, chart_id: str) -> bool:
        return self.sessions.pop((username, chart_id), None) is not None

    def close_chart(self, chart_id: str) -> None:
        for key in [k for k in self.sessions if k[1] == chart_id]:
            del self.sessions[key]

    async def directory(self) -> dict[str, Node]:
        return await self.hierarchy.directory()


editor_service = EditorService()
