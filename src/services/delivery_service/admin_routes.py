from datetime import date, datetime, time, timedelta, timezone
from typing import Annotated, Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.core.auth.token_service import TokenClaims
from src.services.delivery_service.admin_service import AdminService
from src.services.delivery_service.dependencies import (
    get_admin_service,
    get_current_admin,
    get_delivery_service,
)
from src.services.delivery_service.errors import NotFoundError
from src.services.delivery_service.service import DeliveryService
from src.shared.models.common import OkResponse, PageParams
from src.shared.models.enums import RouteStatus
from src.shared.models.route import RouteQueryFilter

router = APIRouter(prefix="/admin", tags=["Admin"])
admins_router = APIRouter(tags=["Admin"])

AdminClaims = Annotated[TokenClaims, Depends(get_current_admin)]


class CreateAdminRequest(BaseModel):
    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)
    name: Optional[str] = None
    claims: dict[str, Any] = Field(default_factory=dict)


class UpdateAdminRequest(BaseModel):
    id: UUID
    login: Optional[str] = Field(None, min_length=1)
    password: Optional[str] = Field(None, min_length=6)
    name: Optional[str] = None
    claims: Optional[dict[str, Any]] = None


def day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_end_exclusive(value: date) -> datetime:
    """`to` includes the whole day, so the bound is the next midnight."""
    return day_start(value) + timedelta(days=1)


def page_params(
    offset: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 10,
    count: bool = False,
) -> PageParams:
    return PageParams(offset=offset, limit=limit, count=count)


# === ADMINS ===

@admins_router.get("/admins")
async def list_admins(
    _: AdminClaims,
    page: Annotated[PageParams, Depends(page_params)],
    service: Annotated[AdminService, Depends(get_admin_service)],
):
    result = await service.list_admins(limit=page.limit, offset=page.offset, count=page.count)
    if page.count:
        return OkResponse(data=result).model_dump()
    return OkResponse(data=[admin.to_public() for admin in result]).model_dump()


@router.post("")
async def create_admin(
    request: CreateAdminRequest,
    _: AdminClaims,
    service: Annotated[AdminService, Depends(get_admin_service)],
):
    admin = await service.create_admin(request.login, request.password, request.name, request.claims)
    return OkResponse(data=admin.to_public()).model_dump()


@router.put("")
async def update_admin(
    request: UpdateAdminRequest,
    _: AdminClaims,
    service: Annotated[AdminService, Depends(get_admin_service)],
):
    admin = await service.update_admin(
        request.id,
        login=request.login,
        password=request.password,
        name=request.name,
        claims=request.claims,
    )
    return OkResponse(data=admin.to_public()).model_dump()


# === ROUTES ===

@router.get("/routes")
async def query_routes(
    _: AdminClaims,
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
    driver_code: Annotated[Optional[str], Query(alias="driverCode")] = None,
    vehicle_code: Annotated[Optional[str], Query(alias="vehicleCode")] = None,
    status: Optional[RouteStatus] = None,
    driver_shift_id: Annotated[Optional[UUID], Query(alias="driverShiftId")] = None,
    date_from: Annotated[Optional[date], Query(alias="from")] = None,
    date_to: Annotated[Optional[date], Query(alias="to")] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    count: bool = False,
):
    query_filter = RouteQueryFilter(
        driver_code=driver_code,
        vehicle_code=vehicle_code,
        status=status,
        driver_shift_id=driver_shift_id,
        date_from=day_start(date_from) if date_from else None,
        date_to=day_end_exclusive(date_to) if date_to else None,
        offset=offset,
        limit=limit,
        count=count,
    )
    result = await service.query_routes(query_filter)
    if count:
        return OkResponse(data=result).model_dump()
    return OkResponse(data=[route.to_public() for route in result]).model_dump()


@router.get("/routes/{internal_id}/history")
async def route_history(
    internal_id: UUID,
    _: AdminClaims,
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    logs = await service.get_route_history_by_id(internal_id)
    return OkResponse(data=[entry.to_public() for entry in logs]).model_dump()


@router.delete("/routes/{internal_id}")
async def delete_route(
    internal_id: UUID,
    _: AdminClaims,
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    await service.delete_route(internal_id)
    return OkResponse().model_dump()


@router.get("/driver-shifts")
async def list_driver_shifts(
    _: AdminClaims,
    page: Annotated[PageParams, Depends(page_params)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    result = await service.list_driver_shifts(limit=page.limit, offset=page.offset, count=page.count)
    if page.count:
        return OkResponse(data=result).model_dump()
    return OkResponse(data=[shift.to_public() for shift in result]).model_dump()


# Объявлены последними: /admin/{admin_id} не должен перехватывать /admin/routes
@router.get("/{admin_id}")
async def get_admin(
    admin_id: UUID,
    _: AdminClaims,
    service: Annotated[AdminService, Depends(get_admin_service)],
):
    admin = await service.get_admin(admin_id)
    if not admin:
        raise NotFoundError("USER_NOT_FOUND")
    return OkResponse(data=admin.to_public()).model_dump()


@router.delete("/{admin_id}")
async def delete_admin(
    admin_id: UUID,
    _: AdminClaims,
    service: Annotated[AdminService, Depends(get_admin_service)],
):
    if not await service.delete_admin(admin_id):
        raise NotFoundError("USER_NOT_FOUND")
    return OkResponse().model_dump()
