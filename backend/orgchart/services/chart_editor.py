"""Editable in-memory org chart with consistent mutations and a save/reload cycle.

A ``ChartSession`` owns one chart's nodes (the hierarchy) and its annotation
tables (free-floating panels kept outside the hierarchy). Every mutating call
either applies completely or raises without touching the graph.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from orgchart.core.errors import (
    CycleDetected,
    DuplicateId,
    NodeNotFound,
    PersistenceError,
    ValidationError,
)
from orgchart.models.node import (
    AUTOFILL_FIELDS,
    HEADCOUNT_OPEN_IMAGE,
    STRUCTURAL_FIELDS,
    TAG_DESCRIPTION_TABLE,
    TAG_GROUP,
    TAG_HEADCOUNT_OPEN,
    AnnotationTable,
    GroupNode,
    Node,
    NodeBase,
    PersonNode,
)
from orgchart.services.node_codec import parse_node, parse_nodes, parse_tags, serialize_nodes

logger = logging.getLogger(__name__)

TABLE_PREFIX = "desc_table"
DEFAULT_TABLE_HEADERS = ["Item", "Description"]
DEFAULT_TABLE_ROWS = [["A", "Desc A"], ["B", "Desc B"]]


class SessionState(str, Enum):
    UNLOADED = "unloaded"
    CLEAN = "clean"
    DIRTY = "dirty"


class TemplateKind(str, Enum):
    DEPARTMENT = "department"
    EMPLOYEE = "employee"
    HEADCOUNT_OPEN = "headcount_open"


_TEMPLATES: dict[TemplateKind, tuple[str, type[NodeBase], dict[str, Any]]] = {
    TemplateKind.DEPARTMENT: (
        "dept",
        GroupNode,
        {"display_name": "New Department", "title": "Department", "tags": [TAG_GROUP]},
    ),
    TemplateKind.EMPLOYEE: (
        "emp",
        PersonNode,
        {"display_name": "New Employee", "title": "Position"},
    ),
    TemplateKind.HEADCOUNT_OPEN: (
        "vacant",
        PersonNode,
        {
            "display_name": "Vacant Position",
            "title": "Open Headcount",
            "image_ref": HEADCOUNT_OPEN_IMAGE,
            "tags": [TAG_HEADCOUNT_OPEN],
            "description": "Open headcount position",
        },
    ),
}


class ChartWriter(Protocol):
    async def put_chart(self, chart_id: str, nodes: list[dict[str, Any]]) -> None: ...


@dataclass(frozen=True)
class SaveResult:
    saved: bool
    node_count: int
    saved_at: datetime | None


def _with_changes(node: NodeBase, changes: Mapping[str, Any]) -> Any:
    data = node.model_dump()
    data.update(changes)
    try:
        return type(node).model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid values for node '{node.id}': {e}") from e


class ChartSession:
    def __init__(self, chart_id: str | None = None) -> None:
        self.chart_id = chart_id
        self.state = SessionState.UNLOADED
        self.last_saved_at: datetime | None = None
        self._nodes: list[Node] = []
        self._tables: list[AnnotationTable] = []
        self._counter = itertools.count(1)
        self._revision = 0

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes)

    @property
    def tables(self) -> list[AnnotationTable]:
        return list(self._tables)

    @property
    def is_dirty(self) -> bool:
        return self.state == SessionState.DIRTY

    def get(self, node_id: str) -> Node | None:
        for item in itertools.chain(self._nodes, self._tables):
            if item.id == node_id:
                return item
        return None

    # -- lifecycle ---------------------------------------------------------

    def load(self, nodes: Iterable[Node | Mapping[str, Any]] | Mapping[str, Any], chart_id: str | None = None) -> None:
        if isinstance(nodes, Mapping):
            parsed = parse_nodes(nodes)
        else:
            parsed = [n if isinstance(n, NodeBase) else parse_node(n) for n in nodes]

        seen: set[str] = set()
        regular: list[Node] = []
        tables: list[AnnotationTable] = []
        for node in parsed:
            if node.id in seen:
                raise DuplicateId(node.id)
            seen.add(node.id)

            if isinstance(node, AnnotationTable):
                tables.append(node)
                continue

            changes: dict[str, Any] = {}
            if node.parent_id == node.id:
                changes["parent_id"] = None
            if node.group_parent_id == node.id:
                changes["group_parent_id"] = None
            if changes:
                logger.warning("Node %s referenced itself as parent; loaded as root", node.id)
                node = _with_changes(node, changes)
            regular.append(node)

        self._nodes = regular
        self._tables = tables
        if chart_id is not None:
            self.chart_id = chart_id
        self._counter = itertools.count(1)
        self._revision = 0
        self.state = SessionState.CLEAN
        logger.info("Chart %s loaded: %d nodes, %d tables", self.chart_id, len(regular), len(tables))

    def serialize(self) -> list[dict[str, Any]]:
        return serialize_nodes([*self._nodes, *self._tables])

    async def save(self, store: ChartWriter) -> SaveResult:
        self._require_loaded()
        if not self.chart_id:
            raise ValidationError("Session has no chart id to save to")

        if self.state == SessionState.CLEAN:
            return SaveResult(saved=False, node_count=len(self._nodes) + len(self._tables), saved_at=self.last_saved_at)

        revision = self._revision
        payload = self.serialize()
        try:
            await store.put_chart(self.chart_id, payload)
        except PersistenceError:
            logger.error("Saving chart %s failed; keeping unsaved changes", self.chart_id)
            raise
        except Exception as e:
            logger.exception("Saving chart %s failed; keeping unsaved changes", self.chart_id)
            raise PersistenceError(f"Failed to save chart '{self.chart_id}': {e}") from e

        self.last_saved_at = datetime.now(timezone.utc)
        # edits made while the write was in flight still need saving
        if revision == self._revision:
            self.state = SessionState.CLEAN
        logger.info("Chart %s saved (%d entries)", self.chart_id, len(payload))
        return SaveResult(saved=True, node_count=len(payload), saved_at=self.last_saved_at)

    # -- structural operations --------------------------------------------

    def add_node(self, template_kind: TemplateKind | str, parent_id: str | None = None) -> Node:
        self._require_loaded()
        try:
            kind = TemplateKind(template_kind)
        except ValueError as e:
            raise ValidationError(f"Unknown node template: {template_kind!r}") from e

        if parent_id is not None:
            self._require_structural(parent_id)

        prefix, node_cls, defaults = _TEMPLATES[kind]
        node = node_cls(id=self._next_id(prefix), parent_id=parent_id, **defaults)
        self._nodes.append(node)
        self._touch()
        logger.debug("Added %s node %s under %s", kind.value, node.id, parent_id)
        return node

    def update_node(
        self,
        node_id: str,
        patch: Mapping[str, Any],
        directory: Mapping[str, Node] | None = None,
    ) -> Node:
        self._require_loaded()
        node = self.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)

        structural = STRUCTURAL_FIELDS.intersection(patch)
        if structural:
            raise ValidationError(f"Fields {sorted(structural)} cannot be patched; use reparent")

        allowed = set(type(node).model_fields) | set(node.model_extra or {})
        unknown = set(patch) - allowed
        if unknown:
            raise ValidationError(f"Unknown node fields: {sorted(unknown)}")

        changes = {k: v for k, v in patch.items() if k != "id"}
        if "tags" in changes:
            changes["tags"] = parse_tags(changes["tags"])
            is_table = isinstance(node, AnnotationTable)
            if (TAG_DESCRIPTION_TABLE in changes["tags"]) != is_table:
                raise ValidationError("The description_table tag cannot be added or removed")

        new_id = node_id
        if "id" in patch:
            new_id = str(patch["id"] or "").strip()
            if not new_id:
                raise ValidationError("Node id must not be empty")

        renaming = new_id != node_id
        if renaming:
            if self.get(new_id) is not None:
                raise DuplicateId(new_id)
            if directory is not None and new_id in directory:
                source = directory[new_id]
                for field in AUTOFILL_FIELDS:
                    value = getattr(source, field, None)
                    if field not in changes and value not in (None, ""):
                        changes[field] = value

        updated = _with_changes(node, changes)
        if not renaming:
            self._replace(node_id, updated)
            self._touch()
            return updated

        return self._rename(updated, node_id, new_id)

    def remove_node(self, node_id: str) -> bool:
        self._require_loaded()
        for collection in (self._nodes, self._tables):
            for index, item in enumerate(collection):
                if item.id == node_id:
                    del collection[index]
                    self._touch()
                    logger.debug("Removed %s", node_id)
                    return True
        return False

    def reparent(self, node_id: str, new_parent_id: str | None) -> Node:
        self._require_loaded()
        node = self._require_structural(node_id)

        if new_parent_id is None:
            updated = _with_changes(node, {"parent_id": None, "group_parent_id": None})
        else:
            if new_parent_id == node_id:
                raise CycleDetected(node_id, new_parent_id)
            target = self._require_structural(new_parent_id)
            if self._reaches(new_parent_id, node_id, self._by_id()):
                raise CycleDetected(node_id, new_parent_id)

            if target.is_group:
                # dropped into a department box: grouped, not directly parented
                updated = _with_changes(node, {"group_parent_id": target.id, "parent_id": None})
            else:
                updated = _with_changes(node, {"parent_id": target.id, "group_parent_id": None})

        self._replace(node_id, updated)
        self._touch()
        logger.debug("Reparented %s under %s", node_id, new_parent_id)
        return updated

    def move_sibling(self, node_id: str, direction: str) -> bool:
        self._require_loaded()
        if direction not in ("left", "right"):
            raise ValidationError(f"Direction must be 'left' or 'right', got {direction!r}")
        node = self._require_structural(node_id)

        key = (node.parent_id, node.group_parent_id)
        positions = [i for i, n in enumerate(self._nodes) if (n.parent_id, n.group_parent_id) == key]
        rank = next(r for r, i in enumerate(positions) if self._nodes[i].id == node_id)
        target_rank = rank - 1 if direction == "left" else rank + 1
        if target_rank < 0 or target_rank >= len(positions):
            return False

        a, b = positions[rank], positions[target_rank]
        self._nodes[a], self._nodes[b] = self._nodes[b], self._nodes[a]
        self._touch()
        return True

    # -- annotation tables -------------------------------------------------

    def add_table(
        self,
        x: float = 500.0,
        y: float = 300.0,
        width: float = 300.0,
        height: float = 200.0,
        headers: list[str] | None = None,
        rows: list[list[str]] | None = None,
    ) -> AnnotationTable:
        self._require_loaded()
        try:
            table = AnnotationTable(
                id=self._next_id(TABLE_PREFIX),
                tags=[TAG_DESCRIPTION_TABLE],
                x=x,
                y=y,
                width=width,
                height=height,
                headers=list(headers) if headers is not None else list(DEFAULT_TABLE_HEADERS),
                rows=[list(r) for r in rows] if rows is not None else [list(r) for r in DEFAULT_TABLE_ROWS],
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid annotation table: {e}") from e
        self._tables.append(table)
        self._touch()
        return table

    def move_table(self, table_id: str, x: float, y: float) -> AnnotationTable:
        return self._update_table(table_id, {"x": x, "y": y})

    def resize_table(self, table_id: str, width: float, height: float) -> AnnotationTable:
        if width < 0 or height < 0:
            raise ValidationError("Table width and height must be non-negative")
        return self._update_table(table_id, {"width": width, "height": height})

    # -- internals ---------------------------------------------------------

    def _update_table(self, table_id: str, changes: Mapping[str, Any]) -> AnnotationTable:
        self._require_loaded()
        for index, table in enumerate(self._tables):
            if table.id == table_id:
                updated = _with_changes(table, changes)
                self._tables[index] = updated
                self._touch()
                return updated
        raise NodeNotFound(table_id)

    def _rename(self, updated: Node, old_id: str, new_id: str) -> Node:
        renamed = _with_changes(updated, {"id": new_id})
        if renamed.parent_id == new_id or renamed.group_parent_id == new_id:
            raise CycleDetected(new_id, new_id)

        nodes: list[Node] = []
        for item in self._nodes:
            if item.id == old_id:
                nodes.append(renamed)
                continue
            fixes: dict[str, Any] = {}
            if item.parent_id == old_id:
                fixes["parent_id"] = new_id
            if item.group_parent_id == old_id:
                fixes["group_parent_id"] = new_id
            if isinstance(item, GroupNode) and item.manager_id == old_id:
                fixes["manager_id"] = new_id
            nodes.append(_with_changes(item, fixes) if fixes else item)

        tables = [renamed if t.id == old_id else t for t in self._tables]

        # dangling references to the new id now resolve to this node
        by_id = {n.id: n for n in nodes}
        for parent in (renamed.parent_id, renamed.group_parent_id):
            if parent and self._reaches(parent, new_id, by_id):
                raise CycleDetected(new_id, parent)

        self._nodes = nodes
        self._tables = tables
        self._touch()
        logger.info("Renamed node %s -> %s", old_id, new_id)
        return renamed

    def _replace(self, node_id: str, updated: Node) -> None:
        for collection in (self._nodes, self._tables):
            for index, item in enumerate(collection):
                if item.id == node_id:
                    collection[index] = updated
                    return
        raise NodeNotFound(node_id)

    def _require_loaded(self) -> None:
        if self.state == SessionState.UNLOADED:
            raise ValidationError("No chart is loaded in this session")

    def _require_structural(self, node_id: str) -> Node:
        node = self.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        if isinstance(node, AnnotationTable):
            raise ValidationError(f"Annotation table '{node_id}' is not part of the hierarchy")
        return node

    def _by_id(self) -> dict[str, Node]:
        return {n.id: n for n in self._nodes}

    @staticmethod
    def _reaches(start_id: str, target_id: str, by_id: Mapping[str, Node]) -> bool:
        """True if ``target_id`` is ``start_id`` or one of its ancestors."""
        stack = [start_id]
        seen: set[str] = set()
        while stack:
            current = stack.pop()
            if current == target_id:
                return True
            if current in seen:
                continue
            seen.add(current)
            node = by_id.get(current)
            if node is None:
                continue
            stack.extend(p for p in (node.parent_id, node.group_parent_id) if p)
        return False

    def _next_id(self, prefix: str) -> str:
        taken: set[str] = set()
        for item in itertools.chain(self._nodes, self._tables):
            taken.add(item.id)
            if item.parent_id:
                taken.add(item.parent_id)
            if item.group_parent_id:
                taken.add(item.group_parent_id)
        while True:
            candidate = f"{prefix}_{next(self._counter)}"
            if candidate not in taken:
                return candidate

    def _touch(self) -> None:
        self._revision += 1
        self.state = SessionState.DIRTY
