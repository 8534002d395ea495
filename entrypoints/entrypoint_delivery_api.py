#!/usr/bin/env python3
# entrypoint_delivery_api.py
"""
Точка входа для Delivery API.
Порт: 8095
"""

import asyncio
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings
from src.common.logger import log_info
from src.common.constants import TypeMsg


async def main() -> None:
    """Запуск Delivery API."""
    await log_info(
        f"Запуск Delivery API на порту {settings.deployment.API_PORT}",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.delivery_service.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    asyncio.run(main())
