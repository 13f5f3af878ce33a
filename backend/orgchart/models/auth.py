"""Authenticated user models derived from Azure AD JWT claims."""

from __future__ import annotations

from pydantic import BaseModel


class UserInfo(BaseModel):
    id: str | None = None
    name: str | None = None
    email: str | None = None
    username: str | None = None
    roles: list[str] = []

    @property
    def owner_key(self) -> str:
        return self.username or self.email or self.id or "anonymous"
