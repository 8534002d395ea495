# src/services/__init__.py
"""
Сервисы приложения.

Архитектура:
- FastAPI-приложение на каждый сервис
- PostgreSQL как единственное долговременное хранилище
- Публикация событий в RabbitMQ, кэш справочников в Redis
- Логистическая система доступна по HTTP

Сервисы:
- delivery_service: смены водителей, синхронизация маршрутных листов,
  статусы точек доставки, администрирование
"""

__all__: list[str] = []
