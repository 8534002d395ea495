#!/usr/bin/env python3
# main.py
"""
Главная точка входа сервиса доставки.

Режимы:
    python main.py api                              # HTTP API (uvicorn)
    python main.py init-db                          # применить migrations/init.sql
    python main.py create-admin LOGIN [--password]  # создать администратора
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.database import init_db, close_db


async def run_api() -> None:
    """Запускает HTTP API сервиса доставки."""
    import uvicorn

    await log_info(
        f"Запуск Delivery API на {settings.deployment.API_HOST}:{settings.deployment.API_PORT}...",
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
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Delivery API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_init_db() -> None:
    """Подключается к БД и применяет схему."""
    await init_db(apply_schema=True)
    await close_db()


async def run_create_admin(login: str, password: str | None, name: str | None) -> None:
    """Создаёт администратора; без --password пароль генерируется и печатается."""
    from src.core.auth.passwords import generate_password
    from src.core.auth.token_service import get_token_service
    from src.services.delivery_service.admin_service import AdminService
    from src.services.delivery_service.errors import ConflictError
    from src.services.delivery_service.repository import AdminRepository

    db = await init_db(apply_schema=True)
    generated = password is None
    password = password or generate_password()
    try:
        service = AdminService(AdminRepository(db), get_token_service())
        admin = await service.create_admin(login, password, name=name)
    except ConflictError:
        await log_error(f"Администратор '{login}' уже существует")
        sys.exit(1)
    finally:
        await close_db()

    print(f"Администратор создан: {admin.login} ({admin.id})")
    if generated:
        print(f"Пароль: {password}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delivery fleet backend")
    subparsers = parser.add_subparsers(dest="mode")

    subparsers.add_parser("api", help="Запустить HTTP API")
    subparsers.add_parser("init-db", help="Применить схему БД")

    create_admin = subparsers.add_parser("create-admin", help="Создать администратора")
    create_admin.add_argument("login")
    create_admin.add_argument("--password", default=None)
    create_admin.add_argument("--name", default=None)
    return parser


async def main(args: argparse.Namespace) -> None:
    setup_logging()
    await log_info(
        f"Delivery fleet v{settings.system.VERSION}, режим '{args.mode}'",
        type_msg=TypeMsg.INFO,
    )

    if args.mode == "api":
        await run_api()
    elif args.mode == "init-db":
        await run_init_db()
    elif args.mode == "create-admin":
        await run_create_admin(args.login, args.password, args.name)


if __name__ == "__main__":
    parser = build_parser()
    args = parser.parse_args()
    if args.mode is None:
        args.mode = "api"

    try:
        asyncio.run(main(args))
    except KeyboardInterrupt:
        pass
