from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple
from uuid import UUID

import asyncpg

from src.infra.database import DatabaseManager
from src.shared.models.admin import Admin, AdminCredentials
from src.shared.models.enums import MovePlaceType, RouteStatus
from src.shared.models.route import NewRoute, Route, RouteChanges, RouteQueryFilter, RouteUpdateLog
from src.shared.models.shift import DriverShift, LabelScan


def _to_route(row: asyncpg.Record) -> Route:
    data = dict(row)
    data["internal_id"] = data.pop("id")
    return Route.model_validate(data)


def _to_log(row: asyncpg.Record) -> RouteUpdateLog:
    return RouteUpdateLog.model_validate(dict(row))


class RouteRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def insert_missing_routes(self, routes: Iterable[NewRoute]) -> int:
        """
        Inserts routes in one transaction, skipping any (driver_shift_id, route_id)
        pair that already exists. Returns the number of rows actually created.
        """
        query = """
            INSERT INTO delivery.routes (
                route_id, driver_shift_id, vehicle_code, driver_code, sheet_position,
                city, address, cust_name, description, contact_name, phone, doc_no, items
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            ON CONFLICT (driver_shift_id, route_id) DO NOTHING
            RETURNING id
        """
        created = 0
        async with self.db.transaction() as connection:
            for route in routes:
                inserted_id = await connection.fetchval(
                    query,
                    route.route_id,
                    route.driver_shift_id,
                    route.vehicle_code,
                    route.driver_code,
                    route.sheet_position,
                    route.city,
                    route.address,
                    route.cust_name,
                    route.description,
                    route.contact_name,
                    route.phone,
                    route.doc_no,
                    route.items,
                )
                if inserted_id is not None:
                    created += 1
        return created

    async def list_by_shift(self, driver_shift_id: UUID) -> List[Route]:
        """All routes of a shift in sheet order."""
        async with self.db.acquire() as connection:
            rows = await connection.fetch(
                """
                SELECT * FROM delivery.routes
                WHERE driver_shift_id = $1
                ORDER BY created_at ASC, sheet_position ASC
                """,
                driver_shift_id,
            )
            return [_to_route(row) for row in rows]

    async def find_by_route_id(self, route_id: str, driver_shift_id: UUID) -> Optional[Route]:
        async with self.db.acquire() as connection:
            row = await connection.fetchrow(
                "SELECT * FROM delivery.routes WHERE route_id = $1 AND driver_shift_id = $2",
                route_id,
                driver_shift_id,
            )
            return _to_route(row) if row else None

    async def get_by_id(self, internal_id: UUID) -> Optional[Route]:
        async with self.db.acquire() as connection:
            row = await connection.fetchrow("SELECT * FROM delivery.routes WHERE id = $1", internal_id)
            return _to_route(row) if row else None

    async def apply_transition(
        self,
        route: Route,
        expected_status: RouteStatus,
        changes: RouteChanges,
    ) -> Optional[Tuple[Route, RouteUpdateLog]]:
        """
        Conditionally updates the route and appends its log entry in one transaction.

        Returns None when the route is no longer in expected_status
        (another request got there first); nothing is written in that case.
        """
        location = changes.location.model_dump()
        async with self.db.transaction() as connection:
            row = await connection.fetchrow(
                """
                UPDATE delivery.routes
                SET status = $3,
                    location = $4::jsonb,
                    recipient_signature = COALESCE($5::text, recipient_signature),
                    contact_person_id = COALESCE($6::text, contact_person_id),
                    complete_date = COALESCE($7::timestamptz, complete_date),
                    images = COALESCE($8::text[], images),
                    reject_reason = COALESCE($9::text, reject_reason),
                    note = COALESCE($10::text, note),
                    updated_at = NOW()
                WHERE id = $1 AND status = $2
                RETURNING *
                """,
                route.internal_id,
                expected_status.value,
                changes.status.value,
                location,
                changes.recipient_signature,
                changes.contact_person_id,
                changes.complete_date,
                changes.images,
                changes.reject_reason,
                changes.note,
            )
            if row is None:
                return None

            log_row = await connection.fetchrow(
                """
                INSERT INTO delivery.route_update_logs (
                    route_id, external_route_id, driver_shift_id, status, location
                )
                VALUES ($1, $2, $3, $4, $5::jsonb)
                RETURNING *
                """,
                route.internal_id,
                route.route_id,
                route.driver_shift_id,
                changes.status.value,
                location,
            )
            return _to_route(row), _to_log(log_row)

    async def list_logs(self, internal_id: UUID) -> List[RouteUpdateLog]:
        """Update log of a route, newest first."""
        async with self.db.acquire() as connection:
            rows = await connection.fetch(
                """
                SELECT * FROM delivery.route_update_logs
                WHERE route_id = $1
                ORDER BY created_at DESC
                """,
                internal_id,
            )
            return [_to_log(row) for row in rows]

    @staticmethod
    def _filter_clause(query_filter: RouteQueryFilter) -> Tuple[str, List[Any]]:
        conditions: List[str] = []
        args: List[Any] = []

        def add(condition: str, value: Any) -> None:
            args.append(value)
            conditions.append(condition.format(n=len(args)))

        if query_filter.driver_code:
            add("driver_code = ${n}", query_filter.driver_code)
        if query_filter.vehicle_code:
            add("vehicle_code = ${n}", query_filter.vehicle_code)
        if query_filter.status:
            add("status = ${n}", query_filter.status.value)
        if query_filter.driver_shift_id:
            add("driver_shift_id = ${n}", query_filter.driver_shift_id)
        if query_filter.date_from:
            add("created_at >= ${n}", query_filter.date_from)
        if query_filter.date_to:
            add("created_at < ${n}", query_filter.date_to)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, args

    async def query(self, query_filter: RouteQueryFilter) -> List[Route]:
        where, args = self._filter_clause(query_filter)
        args.extend([query_filter.limit, query_filter.offset])
        query = f"""
            SELECT * FROM delivery.routes
            {where}
            ORDER BY created_at DESC, sheet_position ASC
            LIMIT ${len(args) - 1} OFFSET ${len(args)}
        """
        async with self.db.acquire() as connection:
            rows = await connection.fetch(query, *args)
            return [_to_route(row) for row in rows]

    async def count(self, query_filter: RouteQueryFilter) -> int:
        where, args = self._filter_clause(query_filter)
        async with self.db.acquire() as connection:
            return await connection.fetchval(f"SELECT COUNT(*) FROM delivery.routes {where}", *args)

    async def delete(self, internal_id: UUID) -> bool:
        async with self.db.acquire() as connection:
            result = await connection.execute("DELETE FROM delivery.routes WHERE id = $1", internal_id)
            return result.endswith(" 1")


class DriverShiftRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def create(
        self,
        driver_code: str,
        vehicle_code: str,
        driver_name: Optional[str] = None,
        driver_surname: Optional[str] = None,
        car: Optional[dict] = None,
    ) -> DriverShift:
        async with self.db.acquire() as connection:
            row = await connection.fetchrow(
                """
                INSERT INTO delivery.driver_shifts (driver_code, vehicle_code, driver_name, driver_surname, car)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING *
                """,
                driver_code,
                vehicle_code,
                driver_name,
                driver_surname,
                car,
            )
            return DriverShift.model_validate(dict(row))

    async def get_by_id(self, shift_id: UUID) -> Optional[DriverShift]:
        async with self.db.acquire() as connection:
            row = await connection.fetchrow("SELECT * FROM delivery.driver_shifts WHERE id = $1", shift_id)
            return DriverShift.model_validate(dict(row)) if row else None

    async def list(self, limit: int, offset: int) -> List[DriverShift]:
        async with self.db.acquire() as connection:
            rows = await connection.fetch(
                """
                SELECT * FROM delivery.driver_shifts
                ORDER BY created_at DESC
                LIMIT $1 OFFSET $2
                """,
                limit,
                offset,
            )
            return [DriverShift.model_validate(dict(row)) for row in rows]

    async def count(self) -> int:
        async with self.db.acquire() as connection:
            return await connection.fetchval("SELECT COUNT(*) FROM delivery.driver_shifts")


class LabelScanRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def add(
        self,
        driver_shift_id: UUID,
        driver_code: str,
        vehicle_code: str,
        label_code: str,
        move_place_type: MovePlaceType,
    ) -> LabelScan:
        async with self.db.acquire() as connection:
            row = await connection.fetchrow(
                """
                INSERT INTO delivery.label_scans (
                    driver_shift_id, driver_code, vehicle_code, label_code, move_place_type
                )
                VALUES ($1, $2, $3, $4, $5)
                RETURNING *
                """,
                driver_shift_id,
                driver_code,
                vehicle_code,
                label_code,
                int(move_place_type),
            )
            return LabelScan.model_validate(dict(row))

    async def set_general_delivery_code(self, driver_shift_id: UUID, general_delivery_code: str) -> int:
        """Stamps the code on the shift's scans that do not have one yet."""
        async with self.db.acquire() as connection:
            result = await connection.execute(
                """
                UPDATE delivery.label_scans
                SET general_delivery_code = $2
                WHERE driver_shift_id = $1 AND general_delivery_code IS NULL
                """,
                driver_shift_id,
                general_delivery_code,
            )
            return int(result.split()[-1])

    async def find_by_general_delivery_code(self, general_delivery_code: str) -> Optional[str]:
        """Label code of the most recent scan stamped with the code."""
        async with self.db.acquire() as connection:
            return await connection.fetchval(
                """
                SELECT label_code FROM delivery.label_scans
                WHERE general_delivery_code = $1
                ORDER BY created_at DESC
                LIMIT 1
                """,
                general_delivery_code,
            )


class AdminRepository:
    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get_by_id(self, admin_id: UUID) -> Optional[Admin]:
        async with self.db.acquire() as connection:
            row = await connection.fetchrow("SELECT * FROM delivery.admins WHERE id = $1", admin_id)
            return Admin.model_validate(dict(row)) if row else None

    async def get_credentials(self, login: str) -> Optional[AdminCredentials]:
        async with self.db.acquire() as connection:
            row = await connection.fetchrow("SELECT * FROM delivery.admins WHERE login = $1", login)
            if not row:
                return None
            return AdminCredentials(
                admin=Admin.model_validate(dict(row)),
                password_hash=row["password_hash"],
                salt=row["salt"],
            )

    async def list(self, limit: int, offset: int) -> List[Admin]:
        async with self.db.acquire() as connection:
            rows = await connection.fetch(
                "SELECT * FROM delivery.admins ORDER BY created_at DESC LIMIT $1 OFFSET $2",
                limit,
                offset,
            )
            return [Admin.model_validate(dict(row)) for row in rows]

    async def count(self) -> int:
        async with self.db.acquire() as connection:
            return await connection.fetchval("SELECT COUNT(*) FROM delivery.admins")

    async def create(
        self,
        login: str,
        password_hash: str,
        salt: str,
        name: Optional[str] = None,
        claims: Optional[dict] = None,
    ) -> Optional[Admin]:
        """Returns None when the login is already taken."""
        async with self.db.acquire() as connection:
            try:
                row = await connection.fetchrow(
                    """
                    INSERT INTO delivery.admins (login, name, password_hash, salt, claims)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                    """,
                    login,
                    name,
                    password_hash,
                    salt,
                    claims or {},
                )
            except asyncpg.UniqueViolationError:
                return None
            return Admin.model_validate(dict(row))

    async def update(
        self,
        admin_id: UUID,
        login: Optional[str] = None,
        name: Optional[str] = None,
        password_hash: Optional[str] = None,
        salt: Optional[str] = None,
        claims: Optional[dict] = None,
    ) -> Optional[Admin]:
        """
        Updates the provided fields. Returns None if the admin does not exist.

        Raises:
            asyncpg.UniqueViolationError: login belongs to another admin
        """
        async with self.db.acquire() as connection:
            row = await connection.fetchrow(
                """
                UPDATE delivery.admins
                SET login = COALESCE($2, login),
                    name = COALESCE($3, name),
                    password_hash = COALESCE($4, password_hash),
                    salt = COALESCE($5, salt),
                    claims = COALESCE($6::jsonb, claims),
                    updated_at = NOW()
                WHERE id = $1
                RETURNING *
                """,
                admin_id,
                login,
                name,
                password_hash,
                salt,
                claims,
            )
            return Admin.model_validate(dict(row)) if row else None

    async def delete(self, admin_id: UUID) -> bool:
        async with self.db.acquire() as connection:
            result = await connection.execute("DELETE FROM delivery.admins WHERE id = $1", admin_id)
            return result.endswith(" 1")

    async def touch_last_active(self, admin_id: UUID, when: Optional[datetime] = None) -> None:
        async with self.db.acquire() as connection:
            await connection.execute(
                "UPDATE delivery.admins SET last_active = COALESCE($2, NOW()) WHERE id = $1",
                admin_id,
                when,
            )
