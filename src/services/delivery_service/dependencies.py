# src/services/delivery_service/dependencies.py
"""
Dependency Injection для API доставки.
Сервисы собираются явно из репозиториев и клиентов на каждый запрос;
в тестах подменяются через app.dependency_overrides.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Header

from src.common.constants import ACCESS_TOKEN_HEADER
from src.core.auth.token_service import InvalidTokenError, TokenClaims, TokenService, get_token_service
from src.infra.database import get_db
from src.infra.event_bus import EventBus, get_event_bus
from src.infra.logistics_api import LogisticsApiClient, get_logistics_api
from src.infra.redis_client import get_redis
from src.services.delivery_service.admin_service import AdminService
from src.services.delivery_service.background import BackgroundTaskTracker
from src.services.delivery_service.errors import NotAuthorizedError
from src.services.delivery_service.repository import (
    AdminRepository,
    DriverShiftRepository,
    LabelScanRepository,
    RouteRepository,
)
from src.services.delivery_service.service import DeliveryService
from src.shared.models.shift import DriverShift


# Фоновые задачи живут дольше запроса, поэтому трекер один на процесс
_background_tracker = BackgroundTaskTracker()


def get_background_tracker() -> BackgroundTaskTracker:
    return _background_tracker


def get_route_repository() -> RouteRepository:
    return RouteRepository(get_db())


def get_shift_repository() -> DriverShiftRepository:
    return DriverShiftRepository(get_db())


def get_label_repository() -> LabelScanRepository:
    return LabelScanRepository(get_db())


def get_admin_repository() -> AdminRepository:
    return AdminRepository(get_db())


def get_gateway() -> LogisticsApiClient:
    return get_logistics_api()


def get_bus() -> EventBus:
    return get_event_bus()


def get_delivery_service(
    repository: Annotated[RouteRepository, Depends(get_route_repository)],
    shift_repository: Annotated[DriverShiftRepository, Depends(get_shift_repository)],
    label_repository: Annotated[LabelScanRepository, Depends(get_label_repository)],
    gateway: Annotated[LogisticsApiClient, Depends(get_gateway)],
    event_bus: Annotated[EventBus, Depends(get_bus)],
    background: Annotated[BackgroundTaskTracker, Depends(get_background_tracker)],
) -> DeliveryService:
    from src.config import settings

    return DeliveryService(
        repository=repository,
        shift_repository=shift_repository,
        label_repository=label_repository,
        gateway=gateway,
        event_bus=event_bus,
        background=background,
        cache=get_redis(),
        driver_info_ttl=settings.redis_ttl.DRIVER_INFO_TTL,
        vehicle_info_ttl=settings.redis_ttl.VEHICLE_INFO_TTL,
    )


def get_admin_service(
    repository: Annotated[AdminRepository, Depends(get_admin_repository)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
) -> AdminService:
    return AdminService(repository, token_service)


# === AUTH ===

def extract_token(x_access_token: Optional[str], authorization: Optional[str]) -> str:
    """x-access-token имеет приоритет; префикс Bearer снимается."""
    token = x_access_token or authorization or ""
    if token.startswith("Bearer "):
        token = token[len("Bearer "):].lstrip()
    return token


async def get_token_claims(
    token_service: Annotated[TokenService, Depends(get_token_service)],
    x_access_token: Annotated[Optional[str], Header(alias=ACCESS_TOKEN_HEADER)] = None,
    authorization: Annotated[Optional[str], Header()] = None,
) -> TokenClaims:
    """Любой валидный токен: водитель, анонимный клиент или администратор."""
    try:
        return token_service.verify_token(extract_token(x_access_token, authorization))
    except InvalidTokenError:
        raise NotAuthorizedError()


async def get_current_driver(
    claims: Annotated[TokenClaims, Depends(get_token_claims)],
) -> TokenClaims:
    """Токен смены водителя (с _id, driverCode и vehicleCode)."""
    if not claims.is_driver:
        raise NotAuthorizedError()
    return claims


async def get_current_admin(
    claims: Annotated[TokenClaims, Depends(get_token_claims)],
) -> TokenClaims:
    if not claims.is_admin or not claims.subject_id:
        raise NotAuthorizedError()
    return claims


async def get_current_shift(
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
) -> DriverShift:
    """Смена из токена; отсутствующая смена означает 401 DRIVER_SHIFT_NOT_FOUND."""
    return await service.require_shift(claims.subject_id)


async def drain_background_tasks(timeout: float = 30.0) -> None:
    await _background_tracker.drain(timeout=timeout)
