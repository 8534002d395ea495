# src/services/delivery_service/__init__.py
"""
HTTP API сервиса доставки: логин водителя, маршрутный лист,
переходы статусов точек и администрирование.
"""
