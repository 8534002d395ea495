# src/shared/models/admin.py
"""
Модели администраторов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Admin(BaseModel):
    """Администратор без секретных полей (хэш и соль не покидают репозиторий)."""

    id: UUID = Field(..., alias="_id")
    login: str
    name: Optional[str] = None
    claims: dict[str, Any] = Field(default_factory=dict)
    last_active: Optional[datetime] = Field(None, alias="lastActive")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    class Config:
        populate_by_name = True
        from_attributes = True

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AdminCredentials(BaseModel):
    """Хэш пароля администратора для проверки при входе."""

    admin: Admin
    password_hash: str
    salt: str
