# src/shared/__init__.py
"""
Общий код сервиса доставки.

Модули:
- events: схемы событий RabbitMQ
- models: DTO и Pydantic-модели
"""

__all__: list[str] = []
