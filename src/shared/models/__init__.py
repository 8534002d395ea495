# src/shared/models/__init__.py
"""
Общие DTO и Pydantic-модели сервиса доставки.
"""

from src.shared.models.enums import RouteStatus, MovePlaceType
from src.shared.models.route import (
    RouteLocation,
    RoutingSheetItem,
    Route,
    RouteUpdateLog,
    NewRoute,
    CompleteRouteData,
    RejectRouteData,
    RouteChanges,
    RouteQueryFilter,
)
from src.shared.models.shift import DriverShift, LabelScan
from src.shared.models.admin import Admin, AdminCredentials
from src.shared.models.common import OkResponse, ErrorResponse, PageParams, HealthStatus

__all__ = [
    # Enums
    "RouteStatus",
    "MovePlaceType",
    # Routes
    "RouteLocation",
    "RoutingSheetItem",
    "Route",
    "RouteUpdateLog",
    "NewRoute",
    "CompleteRouteData",
    "RejectRouteData",
    "RouteChanges",
    "RouteQueryFilter",
    # Shifts
    "DriverShift",
    "LabelScan",
    # Admins
    "Admin",
    "AdminCredentials",
    # Common
    "OkResponse",
    "ErrorResponse",
    "PageParams",
    "HealthStatus",
]
