from __future__ import annotations

from fastapi import HTTPException, status

from orgchart.core.errors import (
    ChartAccessDenied,
    ChartNotFound,
    CycleDetected,
    DuplicateId,
    NodeNotFound,
    OrgChartError,
    PersistenceError,
    SessionNotOpen,
    SourceDataError,
    ValidationError,
)

_STATUS_BY_ERROR: list[tuple[type[OrgChartError], int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NodeNotFound, status.HTTP_404_NOT_FOUND),
    (ChartNotFound, status.HTTP_404_NOT_FOUND),
    (SessionNotOpen, status.HTTP_404_NOT_FOUND),
    (DuplicateId, status.HTTP_409_CONFLICT),
    (CycleDetected, status.HTTP_409_CONFLICT),
    (ChartAccessDenied, status.HTTP_403_FORBIDDEN),
    (PersistenceError, status.HTTP_502_BAD_GATEWAY),
    (SourceDataError, status.HTTP_502_BAD_GATEWAY),
]


def http_error(err: OrgChartError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(err, error_type):
            return HTTPException(
                status_code=status_code,
                detail={"error": type(err).__name__, "message": str(err)},
            )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": type(err).__name__, "message": str(err)},
    )
