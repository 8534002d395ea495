# src/shared/events/__init__.py
"""
Схемы событий для RabbitMQ.

Все события содержат event_id для дедупликации на стороне потребителей.
"""

from src.shared.events.base import DomainEvent, EventMetadata
from src.shared.events.route_events import (
    RouteStatusChanged,
    RouteCompleted,
    RouteRejected,
    RoutingSheetSynced,
)

__all__ = [
    "DomainEvent",
    "EventMetadata",
    "RouteStatusChanged",
    "RouteCompleted",
    "RouteRejected",
    "RoutingSheetSynced",
]
