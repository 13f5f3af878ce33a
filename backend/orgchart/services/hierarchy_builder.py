"""Flat employee records -> org chart node graph.

Every person becomes a ``PersonNode`` whose ``parent_id`` is the normalized key of
its line manager. Each person is also a member (``group_parent_id``) of a synthetic
department container shared by everyone in the same department reporting to the
same manager. Indirect (dotted-line) reports get their own container, tagged
``indirect_group`` and keyed with an ``i-`` prefix so it never merges with the
direct container of the same manager.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from orgchart.core.errors import SourceDataError
from orgchart.models.employee import DirectReport, EmployeeDeparture, EmployeeRecord
from orgchart.models.node import (
    HEADCOUNT_OPEN_IMAGE,
    TAG_GROUP,
    TAG_HEADCOUNT_OPEN,
    TAG_INDIRECT_GROUP,
    TAG_PROBATION,
    GroupNode,
    Node,
    PersonNode,
)

logger = logging.getLogger(__name__)

PROBATION_DAYS = 60
INDIRECT_PREFIX = "i-"
ALL_DEPARTMENTS = "all"
DEFAULT_IMAGE_BASE_URL = "https://raw.githubusercontent.com/Luannt1005/test-images/main/"


@dataclass(frozen=True)
class _GroupInfo:
    department: str
    manager_id: str | None
    indirect: bool


def normalize_manager_key(raw: str | None) -> str | None:
    """``"00042: Alice"`` -> ``"42"``; empty or all-zero references mean no manager."""
    if raw is None:
        return None
    head = str(raw).split(":", 1)[0].strip()
    key = head.lstrip("0")
    return key or None


def is_on_probation(joining_date: date | None, today: date) -> bool:
    if joining_date is None:
        return False
    elapsed = (today - joining_date).days
    return 0 <= elapsed <= PROBATION_DAYS


def department_group_key(department: str, effective_manager_id: str | None) -> str:
    return f"dept:{department}:{effective_manager_id or ''}"


def coerce_records(records: Iterable[EmployeeRecord | Mapping[str, Any]]) -> list[EmployeeRecord]:
    result: list[EmployeeRecord] = []
    for index, item in enumerate(records):
        if isinstance(item, EmployeeRecord):
            result.append(item)
            continue
        if not isinstance(item, Mapping):
            raise SourceDataError(f"Employee row {index} is not a record: {type(item).__name__}")
        try:
            result.append(EmployeeRecord.model_validate(dict(item)))
        except PydanticValidationError as e:
            raise SourceDataError(f"Employee row {index} is malformed: {e}") from e
    return result


def filter_by_department(records: list[EmployeeRecord], department: str | None) -> list[EmployeeRecord]:
    if not department or department == ALL_DEPARTMENTS:
        return records
    return [r for r in records if (r.department or "") == department]


def _person_node(
    record: EmployeeRecord,
    employee_id: str,
    manager_key: str | None,
    group_key: str,
    today: date,
    image_base_url: str,
) -> PersonNode:
    tags: list[str] = []
    image_ref = f"{image_base_url}{employee_id}.jpg"
    if record.is_headcount_open:
        tags.append(TAG_HEADCOUNT_OPEN)
        image_ref = HEADCOUNT_OPEN_IMAGE
    if is_on_probation(record.joining_date, today):
        tags.append(TAG_PROBATION)

    return PersonNode(
        id=employee_id,
        parent_id=manager_key,
        group_parent_id=group_key,
        display_name=record.full_name or "",
        title=record.job_title or "",
        image_ref=image_ref,
        tags=tags,
        department=record.department,
        business_unit=record.business_unit,
        category=record.employment_category,
        location=record.location,
        description=record.employment_type or "",
        joining_date=record.joining_date,
    )


def _group_node(key: str, info: _GroupInfo) -> GroupNode:
    return GroupNode(
        id=key,
        parent_id=info.manager_id,
        display_name=info.department,
        title="Department",
        tags=[TAG_INDIRECT_GROUP if info.indirect else TAG_GROUP],
        department=info.department,
        description=f"Dept under manager {info.manager_id}" if info.manager_id else "",
        manager_id=info.manager_id,
        indirect=info.indirect,
    )


def _pick_duplicate_winners(records: list[EmployeeRecord]) -> dict[str, EmployeeRecord]:
    """One record per employee id; among duplicates the lowest canonical JSON wins."""
    winners: dict[str, EmployeeRecord] = {}
    sort_keys: dict[str, str] = {}
    for record in records:
        employee_id = record.employee_id.strip()
        if not employee_id:
            continue
        key = record.model_dump_json()
        if employee_id not in winners or key < sort_keys[employee_id]:
            winners[employee_id] = record
            sort_keys[employee_id] = key
    return winners


def build_hierarchy(
    records: Iterable[EmployeeRecord | Mapping[str, Any]],
    department: str | None = None,
    *,
    today: date | None = None,
    image_base_url: str = DEFAULT_IMAGE_BASE_URL,
) -> list[Node]:
    today = today or date.today()
    employees = filter_by_department(coerce_records(records), department)

    people: list[Node] = []
    groups: dict[str, _GroupInfo] = {}
    winners = _pick_duplicate_winners(employees)
    seen_ids: set[str] = set()
    skipped = 0

    for record in employees:
        employee_id = record.employee_id.strip()
        if not employee_id:
            skipped += 1
            continue
        if employee_id in seen_ids or winners[employee_id] is not record:
            logger.warning("Duplicate employee id %s ignored", employee_id)
            continue
        seen_ids.add(employee_id)

        manager_key = normalize_manager_key(record.line_manager_raw)
        if manager_key == employee_id:
            logger.warning("Employee %s lists themself as line manager; treating as root", employee_id)
            manager_key = None
        indirect = manager_key is not None and record.is_direct_report == DirectReport.NO
        effective_manager = f"{INDIRECT_PREFIX}{manager_key}" if indirect else manager_key

        dept = record.department or ""
        group_key = department_group_key(dept, effective_manager)
        if group_key not in groups:
            groups[group_key] = _GroupInfo(department=dept, manager_id=manager_key, indirect=indirect)

        people.append(_person_node(record, employee_id, manager_key, group_key, today, image_base_url))

    nodes = people + [_group_node(key, info) for key, info in groups.items()]

    if skipped:
        logger.warning("Skipped %d employee rows without an id", skipped)
    logger.info(
        "Built %d nodes (%d people, %d groups) from %d employees (department=%s)",
        len(nodes),
        len(people),
        len(groups),
        len(employees),
        department or ALL_DEPARTMENTS,
    )
    return nodes


def list_departments(records: Iterable[EmployeeRecord | Mapping[str, Any]]) -> list[str]:
    return sorted({r.department.strip() for r in coerce_records(records) if r.department and r.department.strip()})


def upcoming_departures(
    records: Iterable[EmployeeRecord | Mapping[str, Any]],
    today: date | None = None,
    within_days: int = 30,
) -> list[EmployeeDeparture]:
    today = today or date.today()
    horizon = today + timedelta(days=within_days)

    departures: list[EmployeeDeparture] = []
    for record in coerce_records(records):
        last_day = record.last_working_day
        if last_day is None or not record.employee_id.strip():
            continue
        if today <= last_day <= horizon:
            departures.append(
                EmployeeDeparture(
                    employee_id=record.employee_id.strip(),
                    full_name=record.full_name,
                    department=record.department,
                    job_title=record.job_title,
                    last_working_day=last_day,
                    days_remaining=(last_day - today).days,
                )
            )

    departures.sort(key=lambda d: (d.last_working_day, d.employee_id))
    return departures
