# src/services/delivery_service/batch.py
"""
Пакетная отправка изменений, накопленных приложением водителя офлайн.

Каждый элемент пакета имеет вид {method, url, data}. Элементы выполняются строго
по порядку теми же эндпоинтами, что и одиночные запросы, с заголовками
авторизации исходного запроса. Ошибка одного элемента не прерывает пакет.
"""

from __future__ import annotations

from typing import Any, List, Optional

import httpx
from fastapi import FastAPI
from pydantic import BaseModel, Field

from src.common.constants import ACCESS_TOKEN_HEADER
from src.common.logger import log_debug, log_warning

API_PREFIX = "/api/v1"

# Разрешённые операции: метод + путь
BATCH_ALLOWED: frozenset[tuple[str, str]] = frozenset(
    {
        ("PUT", f"{API_PREFIX}/route"),
        ("PUT", f"{API_PREFIX}/route/complete"),
        ("PUT", f"{API_PREFIX}/route/reject"),
        ("POST", f"{API_PREFIX}/move-place"),
    }
)

FORWARDED_HEADERS = (ACCESS_TOKEN_HEADER, "authorization")


class BatchItem(BaseModel):
    method: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    data: Optional[dict[str, Any]] = None


def normalize_path(url: str) -> str:
    path = "/" + url.split("?", 1)[0].strip().strip("/")
    if not path.startswith(API_PREFIX + "/"):
        path = API_PREFIX + path
    return path


class BatchRequestHandler:
    """Воспроизводит элементы пакета через ASGI-приложение в том же процессе."""

    def __init__(self, app: FastAPI, headers: dict[str, str]):
        self.app = app
        self.headers = {k: v for k, v in headers.items() if k.lower() in FORWARDED_HEADERS}

    async def run(self, items: List[BatchItem]) -> List[Any]:
        results: List[Any] = []
        transport = httpx.ASGITransport(app=self.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://batch") as client:
            for index, item in enumerate(items):
                results.append(await self._run_item(client, index, item))
        return results

    async def _run_item(self, client: httpx.AsyncClient, index: int, item: BatchItem) -> Any:
        method = item.method.upper()
        path = normalize_path(item.url)
        if (method, path) not in BATCH_ALLOWED:
            await log_warning(f"Batch item #{index}: {method} {path} is not allowed")
            return {"error": "BAD_PARAMETERS", "desc": f"{method} {item.url} is not allowed in batch"}

        response = await client.request(method, path, json=item.data or {}, headers=self.headers)
        await log_debug(f"Batch item #{index}: {method} {path} -> {response.status_code}")
        try:
            return response.json()
        except ValueError:
            return {"error": "UNKNOWN_RESPONSE", "desc": response.text}
