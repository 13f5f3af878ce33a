"""Employee record models for HR data held in the employee store."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator

# Excel serial day numbers count from 1899-12-30 (1900 date system, leap-year bug included)
_EXCEL_EPOCH = date(1899, 12, 30)

_DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%Y/%m/%d", "%d.%m.%Y")

HEADCOUNT_OPEN = "hc_open"


class DirectReport(str, Enum):
    YES = "yes"
    NO = "no"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, value: Any) -> DirectReport:
        """Only an explicit "no" (or False) marks an indirect report."""
        if isinstance(value, DirectReport):
            return value
        if value is None:
            return cls.UNSPECIFIED
        if isinstance(value, bool):
            return cls.YES if value else cls.NO
        text = (_coerce_text(value) or "").strip().lower()
        if not text or text == cls.UNSPECIFIED.value:
            return cls.UNSPECIFIED
        if text == "no":
            return cls.NO
        return cls.YES


def parse_hr_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a date: {value!r}")
    if isinstance(value, int | float):
        if isinstance(value, float) and math.isnan(value):
            return None
        if value <= 0:
            raise ValueError(f"Not an Excel serial date: {value!r}")
        return _EXCEL_EPOCH + timedelta(days=int(value))

    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return parse_hr_date(int(text))

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()  # noqa: DTZ007
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    raise ValueError(f"Unrecognized date: {text!r}")


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    if isinstance(value, str):
        return value
    return str(value)


class EmployeeRecord(BaseModel):
    """One HR row as supplied by the employee store."""

    employee_id: str = ""
    full_name: str | None = None
    job_title: str | None = None
    department: str | None = None
    business_unit: str | None = None
    business_unit_detail: str | None = None
    employment_category: str | None = None
    location: str | None = None
    employment_type: str | None = None
    line_manager_raw: str | None = None
    is_direct_report: DirectReport = DirectReport.UNSPECIFIED
    joining_date: date | None = None
    last_working_day: date | None = None

    @field_validator("employee_id", mode="before")
    @classmethod
    def _employee_id_text(cls, value: Any) -> str:
        return _coerce_text(value) or ""

    @field_validator(
        "full_name",
        "job_title",
        "department",
        "business_unit",
        "business_unit_detail",
        "employment_category",
        "location",
        "employment_type",
        "line_manager_raw",
        mode="before",
    )
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        return _coerce_text(value)

    @field_validator("is_direct_report", mode="before")
    @classmethod
    def _parse_direct(cls, value: Any) -> DirectReport:
        return DirectReport.parse(value)

    @field_validator("joining_date", "last_working_day", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> date | None:
        return parse_hr_date(value)

    @property
    def is_headcount_open(self) -> bool:
        return (self.employment_type or "").strip().lower() == HEADCOUNT_OPEN


class EmployeeDeparture(BaseModel):
    employee_id: str
    full_name: str | None = None
    department: str | None = None
    job_title: str | None = None
    last_working_day: date
    days_remaining: int


class EmployeePage(BaseModel):
    data: list[EmployeeRecord]
    page: int
    limit: int
    total: int
    total_pages: int
