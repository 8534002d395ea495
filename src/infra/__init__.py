# src/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: PostgreSQL, Redis, RabbitMQ, логистическое API.
"""

from src.infra.database import DatabaseManager, get_db
from src.infra.redis_client import RedisClient, get_redis
from src.infra.event_bus import EventBus, get_event_bus
from src.infra.logistics_api import ExternalApiError, LogisticsApiClient, get_logistics_api

__all__ = [
    "DatabaseManager",
    "get_db",
    "RedisClient",
    "get_redis",
    "EventBus",
    "get_event_bus",
    "ExternalApiError",
    "LogisticsApiClient",
    "get_logistics_api",
]
