# src/shared/events/route_events.py
"""
События домена доставки (точки маршрутного листа).
"""

from __future__ import annotations

from typing import Literal

from src.shared.events.base import DomainEvent


class RouteStatusChanged(DomainEvent):
    """Событие: статус точки доставки изменён."""

    event_type: Literal["route.status_changed"] = "route.status_changed"

    route_id: str
    external_route_id: str
    driver_shift_id: str
    old_status: str
    new_status: str
    lat: float | None = None
    lon: float | None = None


class RouteCompleted(DomainEvent):
    """Событие: доставка выполнена, подпись получателя получена."""

    event_type: Literal["route.completed"] = "route.completed"

    route_id: str
    external_route_id: str
    driver_shift_id: str
    driver_code: str
    vehicle_code: str
    contact_person_id: str | None = None
    images_count: int = 0


class RouteRejected(DomainEvent):
    """Событие: получатель отказался от доставки."""

    event_type: Literal["route.rejected"] = "route.rejected"

    route_id: str
    external_route_id: str
    driver_shift_id: str
    driver_code: str
    vehicle_code: str
    reason: str


class RoutingSheetSynced(DomainEvent):
    """Событие: маршрутный лист синхронизирован, созданы новые точки."""

    event_type: Literal["routing_sheet.synced"] = "routing_sheet.synced"

    driver_shift_id: str
    driver_code: str
    vehicle_code: str
    created_count: int
    total_count: int
