# src/services/delivery_service/background.py
"""
Фоновые побочные эффекты после коммита (выгрузка этикеток во внешней системе).
Задачи отслеживаются, чтобы дождаться их при остановке приложения.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from src.common.logger import log_error, log_info
from src.common.constants import TypeMsg


class BackgroundTaskTracker:
    """Запускает корутины как задачи и хранит ссылки до их завершения."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Дожидается всех задач; по истечении timeout оставшиеся отменяются."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        await log_info(f"Ожидание фоновых задач: {len(tasks)}", type_msg=TypeMsg.INFO)
        _, pending = await asyncio.wait(tasks, timeout=timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            await log_error(f"Фоновые задачи отменены по таймауту: {len(pending)}")
