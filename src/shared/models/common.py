# src/shared/models/common.py
"""
Общие модели ответов API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class OkResponse(BaseModel):
    """Успешный ответ: {"status": "OK", "data": ...}."""

    status: str = "OK"
    data: Any = None


class ErrorResponse(BaseModel):
    """Ответ с ошибкой: код и необязательная диагностика."""

    error: str
    desc: Any = None
    errors: Optional[list[Any]] = None

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class PageParams(BaseModel):
    """Пагинация offset/limit; count=true возвращает только общее количество."""

    offset: int = Field(0, ge=0)
    limit: int = Field(10, ge=1, le=500)
    count: bool = False


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"
    version: Optional[str] = None
    dependencies: dict[str, str] = Field(default_factory=dict)
