"""Chart document models and editor request/response bodies."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ChartSummary(BaseModel):
    """Chart metadata for listings."""

    id: str
    name: str
    description: str = ""
    username: str
    is_public: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChartDocument(ChartSummary):
    """A persisted, user-customized org chart."""

    nodes: list[dict[str, Any]] = Field(default_factory=list)

    def visible_to(self, username: str | None) -> bool:
        return self.is_public or (username is not None and self.username == username)

    def owned_by(self, username: str | None) -> bool:
        return username is not None and self.username == username


class ChartCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    is_public: bool = False
    nodes: list[dict[str, Any]] | None = None
    seed_department: str | None = Field(
        default=None,
        description="Seed the chart from the employee hierarchy ('all' for every department)",
    )


class ChartUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    is_public: bool | None = None


class HierarchyResponse(BaseModel):
    data: list[dict[str, Any]]
    success: bool = True
    timestamp: datetime
    department: str = "all"


class AddNodeRequest(BaseModel):
    template: Literal["department", "employee", "headcount_open"]
    parent_id: str | None = None


class UpdateNodeRequest(BaseModel):
    patch: dict[str, Any]
    autofill: bool = Field(default=True, description="Copy name/title/photo/department when renaming to a known employee id")


class ReparentRequest(BaseModel):
    new_parent_id: str | None = None


class MoveRequest(BaseModel):
    direction: Literal["left", "right"]


class AddTableRequest(BaseModel):
    x: float = 500.0
    y: float = 300.0
    width: float = Field(default=300.0, ge=0)
    height: float = Field(default=200.0, ge=0)
    headers: list[str] | None = None
    rows: list[list[str]] | None = None


class UpdateTableRequest(BaseModel):
    x: float | None = None
    y: float | None = None
    width: float | None = Field(default=None, ge=0)
    height: float | None = Field(default=None, ge=0)
    headers: list[str] | None = None
    rows: list[list[str]] | None = None
    description: str | None = None


class SessionView(BaseModel):
    chart_id: str
    state: str
    nodes: list[dict[str, Any]]
    last_saved_at: datetime | None = None


class SaveResponse(BaseModel):
    saved: bool
    node_count: int
    saved_at: datetime | None = None
    state: str
