"""Chart node models: person, department group and free-floating annotation table."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

TAG_GROUP = "group"
TAG_INDIRECT_GROUP = "indirect_group"
TAG_HEADCOUNT_OPEN = "headcount_open"
TAG_PROBATION = "probation"
TAG_DESCRIPTION_TABLE = "description_table"

GROUP_TAGS = frozenset({TAG_GROUP, TAG_INDIRECT_GROUP})

HEADCOUNT_OPEN_IMAGE = "/headcount_open.png"

# descriptive fields only; parent links are never auto-filled
AUTOFILL_FIELDS = ("display_name", "title", "image_ref", "department")
STRUCTURAL_FIELDS = frozenset({"parent_id", "group_parent_id", "kind"})


class NodeBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    parent_id: str | None = None
    group_parent_id: str | None = None
    display_name: str = ""
    title: str = ""
    image_ref: str | None = None
    tags: list[str] = Field(default_factory=list)
    department: str | None = None
    business_unit: str | None = None
    category: str | None = None
    location: str | None = None
    description: str = ""
    joining_date: date | None = None

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("id must not be empty")
        return value

    @field_validator("parent_id", "group_parent_id", mode="before")
    @classmethod
    def _blank_link_is_root(cls, value: Any) -> Any:
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for tag in value:
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @property
    def is_group(self) -> bool:
        return bool(GROUP_TAGS.intersection(self.tags))


class PersonNode(NodeBase):
    kind: Literal["person"] = "person"


class GroupNode(NodeBase):
    kind: Literal["group"] = "group"
    manager_id: str | None = None
    indirect: bool = False


class AnnotationTable(NodeBase):
    kind: Literal["table"] = "table"
    x: float = 100.0
    y: float = 100.0
    width: float = Field(default=300.0, ge=0)
    height: float = Field(default=300.0, ge=0)
    headers: list[str] = Field(default_factory=lambda: ["Item", "Description"])
    rows: list[list[str]] = Field(default_factory=list)


Node = Annotated[Union[PersonNode, GroupNode, AnnotationTable], Field(discriminator="kind")]

NODE_ADAPTER: TypeAdapter[Node] = TypeAdapter(Node)
NODE_LIST_ADAPTER: TypeAdapter[list[Node]] = TypeAdapter(list[Node])
