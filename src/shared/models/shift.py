# src/shared/models/shift.py
"""
Модели смены водителя и истории сканирования этикеток.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.shared.models.enums import MovePlaceType


class DriverShift(BaseModel):
    """Смена: пара водитель/машина, созданная при логине."""

    id: UUID
    driver_code: str = Field(..., alias="driverCode")
    vehicle_code: str = Field(..., alias="vehicleCode")
    driver_name: Optional[str] = Field(None, alias="driverName")
    driver_surname: Optional[str] = Field(None, alias="driverSurname")
    car: Optional[dict[str, Any]] = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    class Config:
        populate_by_name = True
        from_attributes = True

    def to_public(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class LabelScan(BaseModel):
    """Запись о перемещении места (этикетки) водителем."""

    id: UUID
    driver_shift_id: UUID = Field(..., alias="driverShiftId")
    driver_code: str = Field(..., alias="driverCode")
    vehicle_code: str = Field(..., alias="vehicleCode")
    label_code: str = Field(..., alias="labelCode")
    move_place_type: MovePlaceType = Field(..., alias="movePlaceType")
    general_delivery_code: Optional[str] = Field(None, alias="generalDeliveryCode")
    created_at: datetime = Field(..., alias="createdAt")

    class Config:
        populate_by_name = True
        from_attributes = True
