# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("LOGISTICS_API_TOKEN", "test_logistics_token")

from src.core.auth.passwords import generate_salt, hash_password
from src.core.auth.token_service import TokenService
from src.services.delivery_service.background import BackgroundTaskTracker
from src.services.delivery_service.service import DeliveryService
from src.shared.models.admin import Admin, AdminCredentials
from src.shared.models.enums import MovePlaceType, RouteStatus
from src.shared.models.route import NewRoute, Route, RouteChanges, RouteQueryFilter, RouteUpdateLog
from src.shared.models.shift import DriverShift, LabelScan


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# IN-MEMORY РЕПОЗИТОРИИ
# =============================================================================

class InMemoryRouteRepository:
    """Повторяет контракт RouteRepository поверх словарей."""

    def __init__(self) -> None:
        self.routes: dict[UUID, Route] = {}
        self.logs: list[RouteUpdateLog] = []
        self.fail_on_insert: Optional[Exception] = None

    async def insert_missing_routes(self, routes: Iterable[NewRoute]) -> int:
        if self.fail_on_insert:
            raise self.fail_on_insert
        created = 0
        now = utcnow()
        for new_route in routes:
            if await self.find_by_route_id(new_route.route_id, new_route.driver_shift_id):
                continue
            route = Route(internal_id=uuid4(), created_at=now, updated_at=now, **new_route.model_dump())
            self.routes[route.internal_id] = route
            created += 1
            # строки вставляются по одной, параллельные вызовы перемежаются
            await asyncio.sleep(0)
        return created

    async def list_by_shift(self, driver_shift_id: UUID) -> List[Route]:
        routes = [r for r in self.routes.values() if r.driver_shift_id == driver_shift_id]
        return sorted(routes, key=lambda r: (r.created_at, r.sheet_position))

    async def find_by_route_id(self, route_id: str, driver_shift_id: UUID) -> Optional[Route]:
        for route in self.routes.values():
            if route.route_id == route_id and route.driver_shift_id == driver_shift_id:
                return route
        return None

    async def get_by_id(self, internal_id: UUID) -> Optional[Route]:
        return self.routes.get(internal_id)

    async def apply_transition(
        self,
        route: Route,
        expected_status: RouteStatus,
        changes: RouteChanges,
    ) -> Optional[Tuple[Route, RouteUpdateLog]]:
        current = self.routes.get(route.internal_id)
        if current is None or current.status != expected_status:
            return None

        update: dict[str, Any] = {"status": changes.status, "location": changes.location, "updated_at": utcnow()}
        for field in ("recipient_signature", "contact_person_id", "complete_date", "images", "reject_reason", "note"):
            value = getattr(changes, field)
            if value is not None:
                update[field] = value
        updated = current.model_copy(update=update)
        self.routes[updated.internal_id] = updated

        log = RouteUpdateLog(
            id=uuid4(),
            route_id=updated.internal_id,
            external_route_id=updated.route_id,
            driver_shift_id=updated.driver_shift_id,
            status=changes.status,
            location=changes.location,
            created_at=utcnow(),
        )
        self.logs.append(log)
        return updated, log

    async def list_logs(self, internal_id: UUID) -> List[RouteUpdateLog]:
        return [log for log in reversed(self.logs) if log.route_id == internal_id]

    def _filtered(self, query_filter: RouteQueryFilter) -> List[Route]:
        result = list(self.routes.values())
        if query_filter.driver_code:
            result = [r for r in result if r.driver_code == query_filter.driver_code]
        if query_filter.vehicle_code:
            result = [r for r in result if r.vehicle_code == query_filter.vehicle_code]
        if query_filter.status:
            result = [r for r in result if r.status == query_filter.status]
        if query_filter.driver_shift_id:
            result = [r for r in result if r.driver_shift_id == query_filter.driver_shift_id]
        return result

    async def query(self, query_filter: RouteQueryFilter) -> List[Route]:
        result = self._filtered(query_filter)
        return result[query_filter.offset:query_filter.offset + query_filter.limit]

    async def count(self, query_filter: RouteQueryFilter) -> int:
        return len(self._filtered(query_filter))

    async def delete(self, internal_id: UUID) -> bool:
        return self.routes.pop(internal_id, None) is not None


class InMemoryShiftRepository:
    def __init__(self) -> None:
        self.shifts: dict[UUID, DriverShift] = {}

    async def create(
        self,
        driver_code: str,
        vehicle_code: str,
        driver_name: Optional[str] = None,
        driver_surname: Optional[str] = None,
        car: Optional[dict[str, Any]] = None,
    ) -> DriverShift:
        now = utcnow()
        shift = DriverShift(
            id=uuid4(),
            driver_code=driver_code,
            vehicle_code=vehicle_code,
            driver_name=driver_name,
            driver_surname=driver_surname,
            car=car,
            created_at=now,
            updated_at=now,
        )
        self.shifts[shift.id] = shift
        return shift

    async def get_by_id(self, shift_id: UUID) -> Optional[DriverShift]:
        return self.shifts.get(shift_id)

    async def list(self, limit: int, offset: int) -> List[DriverShift]:
        return list(self.shifts.values())[offset:offset + limit]

    async def count(self) -> int:
        return len(self.shifts)


class InMemoryLabelRepository:
    def __init__(self) -> None:
        self.scans: list[LabelScan] = []

    async def add(
        self,
        driver_shift_id: UUID,
        driver_code: str,
        vehicle_code: str,
        label_code: str,
        move_place_type: MovePlaceType,
    ) -> LabelScan:
        scan = LabelScan(
            id=uuid4(),
            driver_shift_id=driver_shift_id,
            driver_code=driver_code,
            vehicle_code=vehicle_code,
            label_code=label_code,
            move_place_type=move_place_type,
            created_at=utcnow(),
        )
        self.scans.append(scan)
        return scan

    async def set_general_delivery_code(self, driver_shift_id: UUID, general_delivery_code: str) -> int:
        updated = 0
        for index, scan in enumerate(self.scans):
            if scan.driver_shift_id == driver_shift_id:
                self.scans[index] = scan.model_copy(update={"general_delivery_code": general_delivery_code})
                updated += 1
        return updated

    async def find_by_general_delivery_code(self, general_delivery_code: str) -> Optional[str]:
        for scan in reversed(self.scans):
            if scan.general_delivery_code == general_delivery_code:
                return scan.label_code
        return None


class InMemoryAdminRepository:
    def __init__(self) -> None:
        self.admins: dict[UUID, AdminCredentials] = {}
        self.touched: list[UUID] = []

    def add(self, login: str, password: str, claims: Optional[dict[str, Any]] = None) -> Admin:
        salt = generate_salt()
        now = utcnow()
        admin = Admin(id=uuid4(), login=login, claims=claims or {}, created_at=now, updated_at=now)
        self.admins[admin.id] = AdminCredentials(admin=admin, password_hash=hash_password(password, salt), salt=salt)
        return admin

    async def get_by_id(self, admin_id: UUID) -> Optional[Admin]:
        credentials = self.admins.get(admin_id)
        return credentials.admin if credentials else None

    async def get_credentials(self, login: str) -> Optional[AdminCredentials]:
        for credentials in self.admins.values():
            if credentials.admin.login == login:
                return credentials
        return None

    async def list(self, limit: int, offset: int) -> List[Admin]:
        return [c.admin for c in self.admins.values()][offset:offset + limit]

    async def count(self) -> int:
        return len(self.admins)

    async def create(self, login, password_hash, salt, name=None, claims=None) -> Optional[Admin]:
        if await self.get_credentials(login):
            return None
        now = utcnow()
        admin = Admin(id=uuid4(), login=login, name=name, claims=claims or {}, created_at=now, updated_at=now)
        self.admins[admin.id] = AdminCredentials(admin=admin, password_hash=password_hash, salt=salt)
        return admin

    async def update(self, admin_id, login=None, name=None, password_hash=None, salt=None, claims=None):
        credentials = self.admins.get(admin_id)
        if credentials is None:
            return None
        update = {k: v for k, v in {"login": login, "name": name, "claims": claims}.items() if v is not None}
        admin = credentials.admin.model_copy(update=update)
        self.admins[admin_id] = AdminCredentials(
            admin=admin,
            password_hash=password_hash or credentials.password_hash,
            salt=salt or credentials.salt,
        )
        return admin

    async def delete(self, admin_id: UUID) -> bool:
        return self.admins.pop(admin_id, None) is not None

    async def touch_last_active(self, admin_id: UUID, when: Optional[datetime] = None) -> None:
        self.touched.append(admin_id)


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_db() -> MagicMock:
    """Мок менеджера базы данных с соединением для acquire()/transaction()."""
    connection = AsyncMock()
    connection.fetchrow = AsyncMock(return_value=None)
    connection.fetch = AsyncMock(return_value=[])
    connection.fetchval = AsyncMock(return_value=None)
    connection.execute = AsyncMock(return_value="UPDATE 0")

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=connection)
    context.__aexit__ = AsyncMock(return_value=False)

    db = MagicMock()
    db.acquire = MagicMock(return_value=context)
    db.transaction = MagicMock(return_value=context)
    db.connection = connection
    return db


@pytest.fixture
def mock_redis() -> MagicMock:
    """Мок клиента Redis."""
    redis = MagicMock()
    redis.is_connected = True
    redis.get_or_load_json = AsyncMock(return_value=None)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus


@pytest.fixture
def mock_gateway() -> AsyncMock:
    """Мок клиента логистического API."""
    gateway = AsyncMock()
    gateway.get_driver_by_code = AsyncMock(return_value={"code": "D1", "name": "Ivan", "surname": "Petrov"})
    gateway.get_vehicle_by_code = AsyncMock(return_value={"code": "V1", "plate": "AA1234BB"})
    gateway.get_routing_sheet = AsyncMock(return_value=None)
    gateway.unload_labels = AsyncMock(return_value="1")
    gateway.create_delivery_entry_header = AsyncMock(return_value="1")
    gateway.close_delivery_entry_header = AsyncMock(return_value="1")
    gateway.close_routing_sheet = AsyncMock(return_value="1")
    gateway.move_place = AsyncMock(return_value={"result": "ok"})
    gateway.check_loaded_places = AsyncMock(return_value=[])
    gateway.clear_moved_places = AsyncMock(return_value="2")
    gateway.clear_test_label_data = AsyncMock(return_value="1")
    gateway.create_way_bill = AsyncMock(return_value={"wayBillNo": "WB-1"})
    gateway.check_opened_way_bill = AsyncMock(return_value=True)
    return gateway


# =============================================================================
# ФИКСТУРЫ СЕРВИСА
# =============================================================================

@pytest.fixture
def route_repository() -> InMemoryRouteRepository:
    return InMemoryRouteRepository()


@pytest.fixture
def shift_repository() -> InMemoryShiftRepository:
    return InMemoryShiftRepository()


@pytest.fixture
def label_repository() -> InMemoryLabelRepository:
    return InMemoryLabelRepository()


@pytest.fixture
def admin_repository() -> InMemoryAdminRepository:
    return InMemoryAdminRepository()


@pytest.fixture
def background() -> BackgroundTaskTracker:
    return BackgroundTaskTracker()


@pytest.fixture
def delivery_service(
    route_repository: InMemoryRouteRepository,
    shift_repository: InMemoryShiftRepository,
    label_repository: InMemoryLabelRepository,
    mock_gateway: AsyncMock,
    mock_event_bus: AsyncMock,
    background: BackgroundTaskTracker,
) -> DeliveryService:
    return DeliveryService(
        repository=route_repository,
        shift_repository=shift_repository,
        label_repository=label_repository,
        gateway=mock_gateway,
        event_bus=mock_event_bus,
        background=background,
    )


@pytest.fixture
async def shift(shift_repository: InMemoryShiftRepository) -> DriverShift:
    return await shift_repository.create("D1", "V1", driver_name="Ivan", driver_surname="Petrov")


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(secret="test_jwt_secret", access_ttl=3600, refresh_ttl=7200)


# =============================================================================
# ФИКСТУРЫ ДАННЫХ
# =============================================================================

@pytest.fixture
def sheet_stop_a() -> dict[str, Any]:
    """Точка маршрутного листа в формате логистической системы."""
    return {
        "id": "A",
        "city": "Kyiv",
        "address": "Khreshchatyk 1",
        "custName": "Shop A",
        "contactName": "Olena",
        "phone": "+380501234567",
        "docNo": "DOC-A",
        "items": [{"sku": "X1", "qty": 2}],
    }


@pytest.fixture
def sheet_stop_b() -> dict[str, Any]:
    return {"id": "B", "city": "Kyiv", "address": "Lva Tolstoho 5", "docNo": "DOC-B", "items": []}


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps({"_comment_system": "test", "PROJECT_NAME": "delivery_test", "API_PORT": 9000}),
        encoding="utf-8",
    )
    return config_file
