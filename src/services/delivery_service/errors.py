# src/services/delivery_service/errors.py
"""
Ошибки сервиса доставки. Каждая несёт код для поля `error` ответа
и HTTP статус; обработчики в app.py превращают их в JSON.
"""

from __future__ import annotations

from typing import Any


class DeliveryError(Exception):
    """Базовая ошибка с кодом API."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, code: str | None = None, desc: Any = None):
        self.code = code or self.code
        self.desc = desc
        super().__init__(self.code if desc is None else f"{self.code}: {desc}")

    def to_public(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code}
        if self.desc is not None:
            body["desc"] = self.desc
        return body


class BadParametersError(DeliveryError):
    code = "BAD_PARAMETERS"
    status_code = 400

    def __init__(self, errors: list[dict[str, Any]] | None = None, desc: Any = None):
        super().__init__(desc=desc)
        self.errors = errors or []

    def to_public(self) -> dict[str, Any]:
        body = super().to_public()
        body["errors"] = self.errors
        return body


class RouteNotFoundError(DeliveryError):
    """Точки нет или она принадлежит другой смене."""

    code = "ROUTE_NOT_FOUND"
    status_code = 400


class NotAuthorizedError(DeliveryError):
    code = "NOT_AUTHORIZED"
    status_code = 401


class ForbiddenError(DeliveryError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(DeliveryError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(DeliveryError):
    code = "CONFLICT"
    status_code = 409


class UnknownResponseError(DeliveryError):
    """Логистическая система ответила, но не ожидаемым значением."""

    code = "UNKNOWN_RESPONSE"
    status_code = 503


class LabelNotFoundError(DeliveryError):
    code = "LABEL_NOT_FOUND"
    status_code = 400
