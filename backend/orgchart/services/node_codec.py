"""Conversion between stored node JSON (current and legacy layouts) and node models."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from orgchart.core.errors import ValidationError
from orgchart.models.employee import parse_hr_date
from orgchart.models.node import (
    GROUP_TAGS,
    NODE_ADAPTER,
    TAG_DESCRIPTION_TABLE,
    TAG_PROBATION,
    Node,
)

logger = logging.getLogger(__name__)

# Legacy key -> current field name
_LEGACY_FIELD_MAP: list[tuple[str, str]] = [
    ("pid", "parent_id"),
    ("stpid", "group_parent_id"),
    ("name", "display_name"),
    ("dept", "department"),
    ("bu", "business_unit"),
    ("BU", "business_unit"),
    ("joiningDate", "joining_date"),
    ("w", "width"),
    ("h", "height"),
]

_LEGACY_IMAGE_KEYS = ("img", "image", "photo")

# render-only keys written by the old editor
_LEGACY_DROPPED_KEYS = frozenset({"orig_pid", "table_html", "tableData", "type"})

_LEGACY_TAG_MAP = {"Emp_probation": TAG_PROBATION, "emp": None}


def parse_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Malformed tag list: {raw!r}") from e
            return parse_tags(decoded)
        return [t.strip() for t in text.split(",") if t.strip()]
    if isinstance(raw, list | tuple | set | frozenset):
        return [str(t).strip() for t in raw if str(t).strip()]
    raise ValidationError(f"Unsupported tag value: {raw!r}")


def _is_reserved(key: str, value: Any) -> bool:
    return key.startswith("_") or callable(value)


def _infer_kind(tags: list[str]) -> str:
    if TAG_DESCRIPTION_TABLE in tags:
        return "table"
    if GROUP_TAGS.intersection(tags):
        return "group"
    return "person"


def _from_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _LEGACY_DROPPED_KEYS or key in _LEGACY_IMAGE_KEYS:
            continue
        data[key] = value

    for legacy_key, field in _LEGACY_FIELD_MAP:
        if legacy_key in data:
            value = data.pop(legacy_key)
            if field not in data:
                data[field] = value

    for key in _LEGACY_IMAGE_KEYS:
        if raw.get(key):
            data.setdefault("image_ref", raw[key])
            break

    tags: list[str] = []
    for tag in data.get("tags", []):
        mapped = _LEGACY_TAG_MAP.get(tag, tag)
        if mapped:
            tags.append(mapped)
    data["tags"] = tags
    data["kind"] = _infer_kind(tags)

    if data["kind"] == "table":
        table_data = raw.get("tableData") or {}
        data.setdefault("headers", table_data.get("headers") or ["Item", "Description"])
        data.setdefault("rows", table_data.get("rows") or [])
        for key in ("x", "y", "width", "height"):
            if data.get(key) is None:
                data.pop(key, None)
    else:
        category = raw.get("type")
        if category and category != "group":
            data.setdefault("category", category)

    if data.get("kind") == "group" and "manager_id" not in data:
        data["manager_id"] = data.get("parent_id") or None

    try:
        data["joining_date"] = parse_hr_date(data.get("joining_date"))
    except ValueError:
        logger.warning("Dropping unreadable joining date on legacy node %s", raw.get("id"))
        data["joining_date"] = None

    for key in ("display_name", "title", "description"):
        if data.get(key) is None:
            data.pop(key, None)

    return data


def parse_node(raw: Any) -> Node:
    if not isinstance(raw, dict):
        raise ValidationError(f"Node must be an object, got {type(raw).__name__}")

    data = {k: v for k, v in raw.items() if not _is_reserved(k, v)}
    if "id" in data and data["id"] is not None:
        data["id"] = str(data["id"])
    data["tags"] = parse_tags(data.get("tags"))

    if "kind" not in data:
        data = _from_legacy(data)

    try:
        return NODE_ADAPTER.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid node {raw.get('id')!r}: {e}") from e


def parse_nodes(raw: Any) -> list[Node]:
    # old documents wrapped the list as {"data": [...]}
    if isinstance(raw, dict):
        raw = raw.get("data", [])
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("Node list must be an array")
    return [parse_node(item) for item in raw]


def serialize_node(node: Node) -> dict[str, Any]:
    extra = node.model_extra or {}
    exclude = {k for k, v in extra.items() if _is_reserved(k, v)}
    return node.model_dump(mode="json", exclude=exclude)


def serialize_nodes(nodes: Iterable[Node]) -> list[dict[str, Any]]:
    return [serialize_node(n) for n in nodes]
