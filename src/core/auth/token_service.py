# src/core/auth/token_service.py
"""
Выпуск и проверка JWT (HS256).

Три вида владельцев токена:
- смена водителя: _id смены, driverCode, vehicleCode
- анонимный клиент: anonymous_user=true
- администратор: _id администратора, isAdmin=true, login, claims
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

import jwt
from pydantic import BaseModel, Field


class InvalidTokenError(Exception):
    """Токен отсутствует, просрочен или подпись неверна."""


class TokenClaims(BaseModel):
    """Полезная нагрузка токена."""

    subject_id: Optional[str] = Field(None, alias="_id")
    driver_code: Optional[str] = Field(None, alias="driverCode")
    vehicle_code: Optional[str] = Field(None, alias="vehicleCode")
    anonymous_user: bool = False
    is_admin: bool = Field(False, alias="isAdmin")
    login: Optional[str] = None
    claims: dict[str, Any] = Field(default_factory=dict)
    token_type: str = Field("access", alias="typ")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @property
    def is_driver(self) -> bool:
        return bool(self.subject_id and self.driver_code and self.vehicle_code and not self.is_admin)

    @classmethod
    def for_driver_shift(cls, shift_id: str, driver_code: str, vehicle_code: str) -> "TokenClaims":
        return cls(subject_id=shift_id, driver_code=driver_code, vehicle_code=vehicle_code)

    @classmethod
    def for_anonymous(cls) -> "TokenClaims":
        return cls(anonymous_user=True)

    @classmethod
    def for_admin(cls, admin_id: str, login: str, claims: dict[str, Any] | None = None) -> "TokenClaims":
        return cls(subject_id=admin_id, is_admin=True, login=login, claims=claims or {})

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TokenService:
    """Подпись и проверка токенов общим секретом."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: int = 86400,
        refresh_ttl: int = 157680000,
    ):
        if not secret:
            raise ValueError("JWT secret is not configured")
        self.secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def _encode(self, claims: TokenClaims, ttl: int, token_type: str) -> str:
        now = datetime.now(timezone.utc)
        payload = claims.to_payload()
        payload["typ"] = token_type
        payload["iat"] = now
        payload["exp"] = now + timedelta(seconds=ttl)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def generate_access_token(self, claims: TokenClaims) -> str:
        return self._encode(claims, self.access_ttl, "access")

    def generate_refresh_token(self, claims: TokenClaims) -> str:
        return self._encode(claims, self.refresh_ttl, "refresh")

    def verify_token(self, token: str, expected_type: str = "access") -> TokenClaims:
        """
        Проверяет подпись и срок действия.

        Raises:
            InvalidTokenError: токен пуст, невалиден или другого типа
        """
        if not token:
            raise InvalidTokenError("token is missing")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise InvalidTokenError("token expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError("token is invalid") from e

        claims = TokenClaims.model_validate(payload)
        if claims.token_type != expected_type:
            raise InvalidTokenError(f"{expected_type} token expected")
        return claims


@lru_cache()
def get_token_service() -> TokenService:
    from src.config import settings

    return TokenService(
        secret=settings.auth.JWT_SECRET,
        algorithm=settings.auth.JWT_ALGORITHM,
        access_ttl=settings.auth.ACCESS_TOKEN_TTL_SECONDS,
        refresh_ttl=settings.auth.REFRESH_TOKEN_TTL_SECONDS,
    )
