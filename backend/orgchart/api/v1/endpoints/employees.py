from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status

from orgchart.api.v1.errors import http_error
from orgchart.core.dependencies import EMPLOYEE_ADMIN_ROLES, get_current_user, require_role
from orgchart.core.errors import OrgChartError
from orgchart.models.auth import UserInfo
from orgchart.models.employee import EmployeeDeparture, EmployeePage, EmployeeRecord
from orgchart.services.employee_service import employee_service
from orgchart.services.excel_import import (
    MAX_FILE_SIZE,
    SUPPORTED_CONTENT_TYPES,
    WorkbookError,
    parse_employee_workbook,
)
from orgchart.services.hierarchy_builder import upcoming_departures

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("", response_model=list[EmployeeRecord])
async def list_employees(
    department: str | None = None,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        return await employee_service.list_employees(department)
    except OrgChartError as err:
        logger.error("Failed to list employees: %s", err)
        raise http_error(err) from err


@router.get("/search", response_model=EmployeePage)
async def search_employees(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    department: str | None = None,
    business_unit: str | None = None,
    employment_category: str | None = None,
    job_title: str | None = None,
    location: str | None = None,
    full_name: str | None = None,
    employee_id: str | None = None,
    employment_type: str | None = None,
    line_manager: str | None = None,
    is_direct_report: str | None = None,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    candidates = {
        "department": department,
        "business_unit": business_unit,
        "employment_category": employment_category,
        "job_title": job_title,
        "location": location,
        "full_name": full_name,
        "employee_id": employee_id,
        "employment_type": employment_type,
        "line_manager": line_manager,
        "is_direct_report": is_direct_report,
    }
    filters = {name: value for name, value in candidates.items() if value}
    try:
        return await employee_service.search_employees(filters, page=page, limit=limit)
    except OrgChartError as err:
        logger.error("Failed to search employees: %s", err)
        raise http_error(err) from err


@router.get("/departures", response_model=list[EmployeeDeparture])
async def list_departures(
    within_days: int = 30,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        records = await employee_service.list_employees()
        return upcoming_departures(records, within_days=within_days)
    except OrgChartError as err:
        logger.error("Failed to list upcoming departures: %s", err)
        raise http_error(err) from err


@router.post("/import")
async def import_employees(
    file: UploadFile,
    user: UserInfo = Depends(require_role(*EMPLOYEE_ADMIN_ROLES)),  # noqa: B008
):
    if file.content_type not in SUPPORTED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {file.content_type}. Allowed: XLSX, XLS",
        )

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large: {len(content)} bytes. Maximum: {MAX_FILE_SIZE} bytes",
        )

    try:
        report = parse_employee_workbook(content)
    except WorkbookError as e:
        logger.error("Import failed for file=%s: %s", file.filename, e)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    try:
        succeeded, failed = await employee_service.import_records(report.records)
    except OrgChartError as err:
        logger.error("Import of %s failed: %s", file.filename, err)
        raise http_error(err) from err

    logger.info(
        "Imported %s: %d saved, %d failed, %d skipped, %d invalid rows, user=%s",
        file.filename,
        succeeded,
        failed,
        report.skipped,
        len(report.errors),
        user.owner_key,
    )
    return {
        "success": failed == 0 and not report.errors,
        "imported": succeeded,
        "failed": failed,
        "skipped": report.skipped,
        "errors": [{"row": e.row, "employee_id": e.employee_id, "message": e.message} for e in report.errors],
    }


@router.get("/{employee_id}", response_model=EmployeeRecord)
async def get_employee(
    employee_id: str,
    user: UserInfo = Depends(get_current_user),  # noqa: B008
):
    try:
        employee = await employee_service.get_employee(employee_id)
    except OrgChartError as err:
        logger.error("Failed to get employee %s: %s", employee_id, err)
        raise http_error(err) from err

    if not employee:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Employee '{employee_id}' not found",
        )

    return employee


@router.put("/{employee_id}", response_model=EmployeeRecord)
async def put_employee(
    employee_id: str,
    record: EmployeeRecord,
    user: UserInfo = Depends(require_role(*EMPLOYEE_ADMIN_ROLES)),  # noqa: B008
):
    if record.employee_id.strip() != employee_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Employee id in body does not match the URL",
        )

    try:
        return await employee_service.upsert_employee(record)
    except OrgChartError as err:
        logger.error("Failed to save employee %s: %s", employee_id, err)
        raise http_error(err) from err


@router.delete("/{employee_id}")
async def delete_employee(
    employee_id: str,
    user: UserInfo = Depends(require_role(*EMPLOYEE_ADMIN_ROLES)),  # noqa: B008
):
    try:
        deleted = await employee_service.delete_employee(employee_id)
    except OrgChartError as err:
        logger.error("Failed to delete employee %s: %s", employee_id, err)
        raise http_error(err) from err

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Employee '{employee_id}' not found",
        )
    return {"success": True}
