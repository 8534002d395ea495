# src/shared/models/route.py
"""
Модели точек доставки (маршрутов) и журнала их изменений.
Сериализация наружу в camelCase, внешний идентификатор точки отдаётся как `id`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from src.shared.models.enums import RouteStatus


class RouteLocation(BaseModel):
    """Координаты водителя в момент изменения статуса."""

    lat: float = Field(..., ge=-90, le=90, description="Широта")
    lon: float = Field(..., ge=-180, le=180, description="Долгота")


class RoutingSheetItem(BaseModel):
    """Точка маршрутного листа в том виде, в каком её отдаёт логистическая система."""

    route_id: str = Field(..., alias="id", description="Идентификатор точки во внешней системе")
    city: Optional[str] = None
    address: Optional[str] = None
    cust_name: Optional[str] = Field(None, alias="custName")
    description: Optional[str] = None
    contact_name: Optional[str] = Field(None, alias="contactName")
    phone: Optional[str] = None
    doc_no: Optional[str] = Field(None, alias="docNo")
    items: list[Any] = Field(default_factory=list)

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("route_id", mode="before")
    @classmethod
    def normalize_route_id(cls, v: Any) -> str:
        if v is None or isinstance(v, (dict, list, bool)):
            raise ValueError("stop id is required")
        value = str(v).strip()
        if not value:
            raise ValueError("stop id is required")
        return value

    @field_validator("items", mode="before")
    @classmethod
    def normalize_items(cls, v: Any) -> list[Any]:
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("items must be a list")
        return v


class Route(BaseModel):
    """Точка доставки, принадлежащая смене водителя."""

    internal_id: UUID = Field(..., alias="_id", description="Внутренний идентификатор")
    route_id: str = Field(..., alias="id", description="Идентификатор точки во внешней системе")
    driver_shift_id: UUID = Field(..., alias="driverShiftId")
    vehicle_code: str = Field(..., alias="vehicleCode")
    driver_code: str = Field(..., alias="driverCode")

    city: Optional[str] = None
    address: Optional[str] = None
    cust_name: Optional[str] = Field(None, alias="custName")
    description: Optional[str] = None
    contact_name: Optional[str] = Field(None, alias="contactName")
    phone: Optional[str] = None
    doc_no: Optional[str] = Field(None, alias="docNo")
    items: list[Any] = Field(default_factory=list)

    status: RouteStatus = RouteStatus.PENDING
    recipient_signature: Optional[str] = Field(None, alias="recipientSignature")
    contact_person_id: Optional[str] = Field(None, alias="contactPersonId")
    complete_date: Optional[datetime] = Field(None, alias="completeDate")
    images: list[str] = Field(default_factory=list)
    reject_reason: Optional[str] = Field(None, alias="rejectReason")
    note: Optional[str] = None
    location: Optional[RouteLocation] = None

    sheet_position: int = Field(0, alias="sheetPosition", exclude=True)
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    class Config:
        populate_by_name = True
        from_attributes = True

    def to_public(self) -> dict[str, Any]:
        """Представление для API (camelCase, JSON-совместимые типы)."""
        return self.model_dump(mode="json", by_alias=True)


class RouteUpdateLog(BaseModel):
    """Запись журнала изменений статуса точки. Только добавление."""

    id: UUID
    route_id: UUID = Field(..., alias="routeId")
    external_route_id: str = Field(..., alias="externalRouteId")
    driver_shift_id: UUID = Field(..., alias="driverShiftId")
    status: RouteStatus
    location: Optional[RouteLocation] = None
    created_at: datetime = Field(..., alias="createdAt")

    class Config:
        populate_by_name = True

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class NewRoute(BaseModel):
    """Данные для вставки новой точки при синхронизации листа."""

    route_id: str
    driver_shift_id: UUID
    vehicle_code: str
    driver_code: str
    sheet_position: int
    city: Optional[str] = None
    address: Optional[str] = None
    cust_name: Optional[str] = None
    description: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    doc_no: Optional[str] = None
    items: list[Any] = Field(default_factory=list)

    @classmethod
    def from_sheet_item(
        cls,
        item: RoutingSheetItem,
        driver_shift_id: UUID,
        driver_code: str,
        vehicle_code: str,
        position: int,
    ) -> "NewRoute":
        return cls(
            route_id=item.route_id,
            driver_shift_id=driver_shift_id,
            vehicle_code=vehicle_code,
            driver_code=driver_code,
            sheet_position=position,
            city=item.city,
            address=item.address,
            cust_name=item.cust_name,
            description=item.description,
            contact_name=item.contact_name,
            phone=item.phone,
            doc_no=item.doc_no,
            items=item.items,
        )


# =============================================================================
# КОМАНДЫ ПЕРЕХОДОВ
# =============================================================================

class CompleteRouteData(BaseModel):
    """Подтверждение доставки."""

    signature: str = Field(..., min_length=1)
    location: RouteLocation
    contact_person_id: Optional[str] = None
    note: Optional[str] = None
    images: list[str] = Field(default_factory=list)


class RejectRouteData(BaseModel):
    """Отказ получателя."""

    reason: str = Field(..., min_length=1)
    location: RouteLocation
    note: Optional[str] = None


class RouteChanges(BaseModel):
    """Набор полей, которые переход записывает в точку вместе со статусом."""

    status: RouteStatus
    location: RouteLocation
    recipient_signature: Optional[str] = None
    contact_person_id: Optional[str] = None
    complete_date: Optional[datetime] = None
    images: Optional[list[str]] = None
    reject_reason: Optional[str] = None
    note: Optional[str] = None


# =============================================================================
# ФИЛЬТР ДЛЯ АДМИНКИ
# =============================================================================

class RouteQueryFilter(BaseModel):
    """Фильтр выборки точек для администратора. Пустые поля не ограничивают выборку."""

    driver_code: Optional[str] = None
    vehicle_code: Optional[str] = None
    status: Optional[RouteStatus] = None
    driver_shift_id: Optional[UUID] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    offset: int = Field(0, ge=0)
    limit: int = Field(50, ge=1, le=500)
    count: bool = False
