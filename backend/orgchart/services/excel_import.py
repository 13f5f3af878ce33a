"""HR workbook (Excel) -> employee records."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from orgchart.models.employee import EmployeeRecord

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 20 * 1024 * 1024  # 20 MB

SUPPORTED_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-excel": "xls",
}

# HR export headers, compared with whitespace/underscores removed and lower-cased
_HEADER_ALIASES: dict[str, str] = {
    "empid": "employee_id",
    "employeeid": "employee_id",
    "fullname": "full_name",
    "jobtitle": "job_title",
    "dept": "department",
    "department": "department",
    "bu": "business_unit",
    "buorg3": "business_unit_detail",
    "dl/idl/staff": "employment_category",
    "location": "location",
    "employeetype": "employment_type",
    "linemanager": "line_manager_raw",
    "isdirect": "is_direct_report",
    "joiningdate": "joining_date",
    "lastworkingday": "last_working_day",
}


class WorkbookError(Exception):
    pass


@dataclass
class RowError:
    row: int
    employee_id: str | None
    message: str


@dataclass
class ImportReport:
    records: list[EmployeeRecord] = field(default_factory=list)
    skipped: int = 0
    errors: list[RowError] = field(default_factory=list)


def _normalize_header(header: Any) -> str:
    return re.sub(r"[\s_]+", "", str(header)).lower()


def map_columns(columns: list[Any]) -> dict[Any, str]:
    mapping: dict[Any, str] = {}
    for column in columns:
        target = _HEADER_ALIASES.get(_normalize_header(column))
        if target and target not in mapping.values():
            mapping[column] = target
    return mapping


def parse_employee_frame(frame: pd.DataFrame) -> ImportReport:
    mapping = map_columns(list(frame.columns))
    if "employee_id" not in mapping.values():
        raise WorkbookError("Workbook has no 'Emp ID' column")

    frame = frame[list(mapping)].rename(columns=mapping)
    frame = frame.astype(object).where(pd.notna(frame), None)

    report = ImportReport()
    seen: set[str] = set()
    # row 1 is the header row in the spreadsheet
    for row_number, row in enumerate(frame.to_dict(orient="records"), start=2):
        raw_id = row.get("employee_id")
        if raw_id is None or not str(raw_id).strip():
            report.skipped += 1
            continue

        try:
            record = EmployeeRecord.model_validate(row)
        except PydanticValidationError as e:
            report.errors.append(RowError(row=row_number, employee_id=str(raw_id).strip(), message=str(e)))
            continue

        employee_id = record.employee_id.strip()
        if employee_id in seen:
            report.errors.append(RowError(row=row_number, employee_id=employee_id, message="Duplicate Emp ID"))
            continue
        seen.add(employee_id)
        report.records.append(record)

    logger.info(
        "Parsed workbook: %d records, %d skipped, %d errors",
        len(report.records),
        report.skipped,
        len(report.errors),
    )
    return report


def parse_employee_workbook(content: bytes) -> ImportReport:
    if not content:
        raise WorkbookError("Uploaded file is empty")

    try:
        frame = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=object)
    except Exception as e:
        logger.error("Workbook parsing failed: %s", e)
        raise WorkbookError(f"Failed to read workbook: {e}") from e

    if frame.empty:
        raise WorkbookError("Workbook has no rows")

    return parse_employee_frame(frame)
