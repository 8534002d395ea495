# src/infra/logistics_api.py
"""
HTTP клиент внешней логистической системы.

Источник маршрутных листов, справочников водителей/транспорта
и операций с этикетками (погрузка, выгрузка, закрытие листа).
Каждый вызов выполняется один раз, без автоматических повторов.
"""

from __future__ import annotations

from typing import Any

import httpx

from src.common.logger import log_error, log_info
from src.common.constants import TypeMsg


class ExternalApiError(Exception):
    """
    Ошибка внешней логистической системы (недоступна, таймаут, 4xx/5xx).

    В ответ клиенту уходит только сообщение и HTTP статус внешней системы,
    без сырого запроса/ответа.
    """

    code = "EXTERNAL_API_ERROR"
    status_code = 503

    def __init__(self, message: str, upstream_status: int | None = None):
        super().__init__(message)
        self.message = message
        self.upstream_status = upstream_status

    @property
    def desc(self) -> dict[str, Any]:
        desc: dict[str, Any] = {"message": self.message}
        if self.upstream_status is not None:
            desc["status"] = self.upstream_status
        return desc


class LogisticsApiClient:
    """Асинхронный клиент логистического API поверх httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    # =========================================================================
    # ТРАНСПОРТ
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        """
        Выполняет запрос и возвращает разобранное тело ответа.

        Args:
            allow_not_found: 404 трактуется как отсутствие данных (None), а не ошибка
        """
        try:
            response = await self.client.request(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            await log_error(f"Логистическое API: таймаут {method} {path}: {e}")
            raise ExternalApiError(f"Timeout calling {path}") from e
        except httpx.HTTPError as e:
            await log_error(f"Логистическое API: ошибка соединения {method} {path}: {e}")
            raise ExternalApiError(f"Connection error calling {path}") from e

        if allow_not_found and response.status_code == 404:
            return None

        if response.is_error:
            await log_error(
                f"Логистическое API: {method} {path} вернул {response.status_code}",
                extra={"body": response.text[:500]},
            )
            raise ExternalApiError(
                f"Unexpected response from {path}",
                upstream_status=response.status_code,
            )

        return self._parse_body(response)

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError as e:
                raise ExternalApiError("Malformed JSON in response", upstream_status=response.status_code) from e
        return response.text.strip()

    # =========================================================================
    # СПРАВОЧНИКИ
    # =========================================================================

    async def get_driver_by_code(self, driver_code: str) -> dict[str, Any] | None:
        """Профиль водителя (name, surname) или None, если код неизвестен."""
        data = await self._request("GET", f"/drivers/{driver_code}", allow_not_found=True)
        return data or None

    async def get_vehicle_by_code(self, vehicle_code: str) -> dict[str, Any] | None:
        """Данные машины (mark, model, color, licencePlate) или None."""
        data = await self._request("GET", f"/vehicles/{vehicle_code}", allow_not_found=True)
        return data or None

    # =========================================================================
    # МАРШРУТНЫЙ ЛИСТ
    # =========================================================================

    async def get_routing_sheet(self, driver_code: str, vehicle_code: str) -> list[dict[str, Any]] | None:
        """
        Текущий маршрутный лист пары водитель/машина.

        Returns:
            Упорядоченный список точек; None, если листа нет
        """
        data = await self._request(
            "GET",
            "/routing-sheet",
            params={"driverCode": driver_code, "vehicleCode": vehicle_code},
            allow_not_found=True,
        )
        if isinstance(data, dict):
            data = data.get("routes")
        if not data:
            return None
        if not isinstance(data, list):
            raise ExternalApiError("Routing sheet is not a list")
        await log_info(
            f"Получен маршрутный лист {driver_code}/{vehicle_code}: {len(data)} точек",
            type_msg=TypeMsg.DEBUG,
        )
        return data

    async def unload_labels(
        self,
        driver_code: str,
        vehicle_code: str,
        route_id: str,
        doc_no: str | None = None,
    ) -> Any:
        """Отмечает этикетки выполненной точки как выгруженные."""
        payload: dict[str, Any] = {
            "driverCode": driver_code,
            "vehicleCode": vehicle_code,
            "routeId": route_id,
        }
        if doc_no:
            payload["docNo"] = doc_no
        return await self._request("POST", "/labels/unload", json=payload)

    async def create_delivery_entry_header(self, driver_code: str, vehicle_code: str) -> Any:
        return await self._request(
            "POST",
            "/delivery-entry-header/create",
            json={"driverCode": driver_code, "vehicleCode": vehicle_code},
        )

    async def close_delivery_entry_header(self, driver_code: str, vehicle_code: str) -> Any:
        return await self._request(
            "POST",
            "/delivery-entry-header/close",
            json={"driverCode": driver_code, "vehicleCode": vehicle_code},
        )

    async def move_place(
        self,
        driver_code: str,
        vehicle_code: str,
        label_code: str,
        move_place_type: int,
        routing_sheet_code: str | None = None,
    ) -> Any:
        """Перемещение места (этикетки): погрузка, выгрузка или возврат."""
        payload: dict[str, Any] = {
            "driverCode": driver_code,
            "vehicleCode": vehicle_code,
            "labelCode": label_code,
            "movePlaceType": move_place_type,
        }
        if routing_sheet_code:
            payload["routingSheetCode"] = routing_sheet_code
        return await self._request("POST", "/places/move", json=payload)

    async def check_loaded_places(self, driver_code: str, vehicle_code: str) -> list[dict[str, Any]]:
        """Сводка погрузки: generalDeliveryCode, loadedPlaces, placesQuantity."""
        data = await self._request(
            "POST",
            "/places/check-loaded",
            json={"driverCode": driver_code, "vehicleCode": vehicle_code},
        )
        return data or []

    async def close_routing_sheet(self, driver_code: str, vehicle_code: str, routing_sheet_code: str) -> Any:
        return await self._request(
            "POST",
            "/routing-sheet/close",
            json={
                "driverCode": driver_code,
                "vehicleCode": vehicle_code,
                "routingSheetCode": routing_sheet_code,
            },
        )

    async def clear_moved_places(self, driver_code: str, vehicle_code: str, routing_sheet_code: str) -> Any:
        """Сбрасывает перемещения мест по маршрутному листу. Ответ "2" или "0" означает успех."""
        return await self._request(
            "POST",
            "/places/clear-moved",
            json={
                "driverCode": driver_code,
                "vehicleCode": vehicle_code,
                "routingSheetCode": routing_sheet_code,
            },
        )

    async def clear_test_label_data(self, label_code: str) -> Any:
        return await self._request("POST", "/labels/clear-test-data", json={"labelCode": label_code})

    # =========================================================================
    # ПУТЕВОЙ ЛИСТ
    # =========================================================================

    async def create_way_bill(self, driver_code: str, vehicle_code: str) -> Any:
        """Формирует путевой лист для печати."""
        return await self._request(
            "POST",
            "/way-bill/create",
            json={"driverCode": driver_code, "vehicleCode": vehicle_code},
        )

    async def check_opened_way_bill(self, driver_code: str, vehicle_code: str) -> Any:
        return await self._request(
            "POST",
            "/way-bill/check-opened",
            json={"driverCode": driver_code, "vehicleCode": vehicle_code},
        )

    async def health_check(self) -> bool:
        try:
            response = await self.client.get("/health")
            return response.status_code < 500
        except httpx.HTTPError:
            return False


_logistics_api: LogisticsApiClient | None = None


def get_logistics_api() -> LogisticsApiClient:
    """Возвращает глобальный клиент, создавая его по настройкам при первом вызове."""
    global _logistics_api
    if _logistics_api is None:
        from src.config import settings

        _logistics_api = LogisticsApiClient(
            base_url=settings.logistics_api.LOGISTICS_API_URL,
            token=settings.logistics_api.LOGISTICS_API_TOKEN,
            timeout=settings.logistics_api.LOGISTICS_API_TIMEOUT,
        )
    return _logistics_api


async def close_logistics_api() -> None:
    global _logistics_api
    if _logistics_api is not None:
        await _logistics_api.close()
        _logistics_api = None
