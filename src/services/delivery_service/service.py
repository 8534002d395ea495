import asyncio
from datetime import datetime, timezone
from typing import Any, List, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from src.common.constants import CLEAR_MOVED_PLACES_OK, DRIVER_CACHE_KEY, EXTERNAL_OK, VEHICLE_CACHE_KEY
from src.common.logger import log_debug, log_error, log_info, log_warning
from src.infra.event_bus import EventBus
from src.infra.logistics_api import LogisticsApiClient
from src.infra.redis_client import RedisClient
from src.services.delivery_service.background import BackgroundTaskTracker
from src.services.delivery_service.errors import (
    BadParametersError,
    ConflictError,
    LabelNotFoundError,
    NotAuthorizedError,
    NotFoundError,
    RouteNotFoundError,
    UnknownResponseError,
)
from src.services.delivery_service.repository import (
    DriverShiftRepository,
    LabelScanRepository,
    RouteRepository,
)
from src.services.delivery_service.state_machine import RouteStateMachine
from src.shared.events.route_events import (
    RouteCompleted,
    RouteRejected,
    RouteStatusChanged,
    RoutingSheetSynced,
)
from src.shared.models.enums import MovePlaceType, RouteStatus
from src.shared.models.route import (
    CompleteRouteData,
    NewRoute,
    RejectRouteData,
    Route,
    RouteChanges,
    RouteLocation,
    RouteQueryFilter,
    RouteUpdateLog,
    RoutingSheetItem,
)
from src.shared.models.shift import DriverShift, LabelScan


class DeliveryService:
    """
    Routing sheet synchronization and route status transitions
    for one driver shift at a time.
    """

    def __init__(
        self,
        repository: RouteRepository,
        shift_repository: DriverShiftRepository,
        label_repository: LabelScanRepository,
        gateway: LogisticsApiClient,
        event_bus: EventBus,
        background: BackgroundTaskTracker,
        cache: Optional[RedisClient] = None,
        driver_info_ttl: int = 3600,
        vehicle_info_ttl: int = 3600,
    ):
        self.repository = repository
        self.shift_repository = shift_repository
        self.label_repository = label_repository
        self.gateway = gateway
        self.event_bus = event_bus
        self.background = background
        self.cache = cache
        self.driver_info_ttl = driver_info_ttl
        self.vehicle_info_ttl = vehicle_info_ttl

    # ------------------------------------------------------------------
    # Driver shift context
    # ------------------------------------------------------------------

    async def find_delivery_shift_by_id(self, shift_id: Union[str, UUID, None]) -> Optional[DriverShift]:
        if not shift_id:
            return None
        try:
            shift_uuid = shift_id if isinstance(shift_id, UUID) else UUID(str(shift_id))
        except ValueError:
            return None
        return await self.shift_repository.get_by_id(shift_uuid)

    async def require_shift(self, shift_id: Union[str, UUID, None]) -> DriverShift:
        shift = await self.find_delivery_shift_by_id(shift_id)
        if not shift:
            raise NotAuthorizedError(desc="DRIVER_SHIFT_NOT_FOUND")
        return shift

    async def get_driver_info(self, driver_code: str) -> Optional[dict]:
        return await self._cached_lookup(
            DRIVER_CACHE_KEY.format(code=driver_code),
            lambda: self.gateway.get_driver_by_code(driver_code),
            self.driver_info_ttl,
        )

    async def get_vehicle_info(self, vehicle_code: str) -> Optional[dict]:
        return await self._cached_lookup(
            VEHICLE_CACHE_KEY.format(code=vehicle_code),
            lambda: self.gateway.get_vehicle_by_code(vehicle_code),
            self.vehicle_info_ttl,
        )

    async def _cached_lookup(self, key, loader, ttl: int) -> Optional[dict]:
        if self.cache is None or not self.cache.is_connected:
            return await loader()
        return await self.cache.get_or_load_json(key, loader, ttl=ttl)

    async def open_driver_shift(self, driver_code: str, vehicle_code: str) -> DriverShift:
        """
        Looks up driver and vehicle in the logistics system concurrently and
        opens a new shift for the pair.
        """
        driver_data, car_data = await asyncio.gather(
            self.get_driver_info(driver_code),
            self.get_vehicle_info(vehicle_code),
        )
        if not driver_data or not car_data:
            raise NotFoundError("DRIVER_NOT_FOUND")

        shift = await self.shift_repository.create(
            driver_code=driver_code,
            vehicle_code=vehicle_code,
            driver_name=driver_data.get("name"),
            driver_surname=driver_data.get("surname"),
            car=car_data,
        )
        await log_info(f"Driver shift {shift.id} opened for {driver_code}/{vehicle_code}")
        return shift

    # ------------------------------------------------------------------
    # Synchronization
    # ------------------------------------------------------------------

    async def fetch_routing_sheet(self, shift_id: Union[str, UUID], driver_code: str, vehicle_code: str) -> List[Route]:
        """Gateway fetch followed by sync for the caller's shift."""
        sheet = await self.gateway.get_routing_sheet(driver_code, vehicle_code)
        if not sheet:
            raise NotFoundError("NO_ROUTING_SHEET")

        shift = await self.require_shift(shift_id)
        return await self.sync_deliveries(shift, sheet)

    async def sync_deliveries(self, shift: DriverShift, sheet: List[Any]) -> List[Route]:
        """
        Creates a pending route for every stop of the sheet that the shift
        does not have yet. Existing routes are never modified. Stops that cannot
        be parsed are skipped; repeated stop ids keep their first occurrence.
        """
        if not sheet:
            raise NotFoundError("NO_ROUTING_SHEET")

        new_routes: List[NewRoute] = []
        seen: set = set()
        for position, raw_stop in enumerate(sheet):
            try:
                item = RoutingSheetItem.model_validate(raw_stop)
            except ValidationError as e:
                await log_warning(
                    f"Skipping unparsable stop #{position} for shift {shift.id}",
                    extra={"errors": e.errors(include_url=False, include_input=False)},
                )
                continue

            if item.route_id in seen:
                await log_debug(f"Duplicate stop {item.route_id} in sheet for shift {shift.id}")
                continue
            seen.add(item.route_id)

            new_routes.append(
                NewRoute.from_sheet_item(
                    item,
                    driver_shift_id=shift.id,
                    driver_code=shift.driver_code,
                    vehicle_code=shift.vehicle_code,
                    position=position,
                )
            )

        try:
            created = await self.repository.insert_missing_routes(new_routes)
            routes = await self.repository.list_by_shift(shift.id)
        except Exception as e:
            await log_error(f"Routing sheet sync failed for shift {shift.id}: {e}", exc_info=True)
            raise

        if created:
            await log_info(f"Shift {shift.id}: {created} new routes from routing sheet")
            await self.event_bus.publish(
                RoutingSheetSynced(
                    driver_shift_id=str(shift.id),
                    driver_code=shift.driver_code,
                    vehicle_code=shift.vehicle_code,
                    created_count=created,
                    total_count=len(routes),
                )
            )
        return routes

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def find_route(self, route_id: str, shift_id: UUID) -> Route:
        route = await self.repository.find_by_route_id(route_id, shift_id)
        if not route:
            raise RouteNotFoundError()
        return route

    async def update_route_status(
        self,
        route: Route,
        status: Union[str, RouteStatus],
        location: RouteLocation,
    ) -> Route:
        try:
            new_status = RouteStatus(status)
        except ValueError:
            raise BadParametersError([{"param": "status", "msg": f"Unknown status {status}"}])
        if new_status.is_terminal:
            raise BadParametersError(
                [{"param": "status", "msg": "Use /route/complete or /route/reject for final statuses"}]
            )
        return await self._transition(route, RouteChanges(status=new_status, location=location))

    async def complete_route(self, route: Route, data: CompleteRouteData) -> Route:
        if not data.signature:
            raise BadParametersError([{"param": "signature", "msg": "signature is required"}])
        changes = RouteChanges(
            status=RouteStatus.COMPLETED,
            location=data.location,
            recipient_signature=data.signature,
            contact_person_id=data.contact_person_id,
            complete_date=datetime.now(timezone.utc),
            images=data.images or None,
            note=data.note,
        )
        return await self._transition(route, changes)

    async def reject_route(self, route: Route, data: RejectRouteData) -> Route:
        if not data.reason:
            raise BadParametersError([{"param": "reason", "msg": "reason is required"}])
        changes = RouteChanges(
            status=RouteStatus.REJECTED,
            location=data.location,
            reject_reason=data.reason,
            note=data.note,
        )
        return await self._transition(route, changes)

    async def _transition(self, route: Route, changes: RouteChanges) -> Route:
        RouteStateMachine.ensure_transition(route.status, changes.status)

        try:
            result = await self.repository.apply_transition(route, route.status, changes)
        except Exception as e:
            await log_error(f"Route {route.route_id} transition to {changes.status} failed: {e}", exc_info=True)
            raise

        if result is None:
            raise ConflictError(
                "ROUTE_STATUS_CONFLICT",
                desc={"expected": str(route.status), "to": str(changes.status)},
            )
        updated, _ = result

        await log_info(f"Route {route.route_id} (shift {route.driver_shift_id}): {route.status} -> {updated.status}")
        await self._publish_transition(route.status, updated)

        if updated.status == RouteStatus.COMPLETED:
            self.background.spawn(self._unload_labels(updated), name=f"unload-{updated.route_id}")
        return updated

    async def _publish_transition(self, old_status: RouteStatus, route: Route) -> None:
        await self.event_bus.publish(
            RouteStatusChanged(
                route_id=str(route.internal_id),
                external_route_id=route.route_id,
                driver_shift_id=str(route.driver_shift_id),
                old_status=old_status.value,
                new_status=route.status.value,
                lat=route.location.lat if route.location else None,
                lon=route.location.lon if route.location else None,
            )
        )
        if route.status == RouteStatus.COMPLETED:
            await self.event_bus.publish(
                RouteCompleted(
                    route_id=str(route.internal_id),
                    external_route_id=route.route_id,
                    driver_shift_id=str(route.driver_shift_id),
                    driver_code=route.driver_code,
                    vehicle_code=route.vehicle_code,
                    contact_person_id=route.contact_person_id,
                    images_count=len(route.images),
                )
            )
        elif route.status == RouteStatus.REJECTED:
            await self.event_bus.publish(
                RouteRejected(
                    route_id=str(route.internal_id),
                    external_route_id=route.route_id,
                    driver_shift_id=str(route.driver_shift_id),
                    driver_code=route.driver_code,
                    vehicle_code=route.vehicle_code,
                    reason=route.reject_reason or "",
                )
            )

    async def _unload_labels(self, route: Route) -> None:
        try:
            await self.gateway.unload_labels(
                route.driver_code,
                route.vehicle_code,
                route.route_id,
                route.doc_no,
            )
        except Exception as e:
            await log_error(f"Unload labels failed for route {route.route_id}: {e}")
            return
        await log_debug(f"Labels unloaded for route {route.route_id}")

    async def get_route_history(self, route: Route) -> List[RouteUpdateLog]:
        return await self.repository.list_logs(route.internal_id)

    # ------------------------------------------------------------------
    # Logistics passthroughs
    # ------------------------------------------------------------------

    @staticmethod
    def _expect_ok(response: Any) -> str:
        if str(response).strip() != EXTERNAL_OK:
            raise UnknownResponseError(desc=response)
        return EXTERNAL_OK

    async def create_delivery_entry_header(self, driver_code: str, vehicle_code: str) -> str:
        return self._expect_ok(await self.gateway.create_delivery_entry_header(driver_code, vehicle_code))

    async def close_delivery_entry_header(self, driver_code: str, vehicle_code: str) -> str:
        return self._expect_ok(await self.gateway.close_delivery_entry_header(driver_code, vehicle_code))

    async def close_routing_sheet(self, driver_code: str, vehicle_code: str, routing_sheet_code: str) -> str:
        return self._expect_ok(
            await self.gateway.close_routing_sheet(driver_code, vehicle_code, routing_sheet_code)
        )

    async def move_place(
        self,
        shift_id: UUID,
        driver_code: str,
        vehicle_code: str,
        label_code: str,
        move_place_type: MovePlaceType,
        routing_sheet_code: Optional[str] = None,
    ) -> Any:
        """Moves a parcel label in the logistics system and records the scan locally."""
        response = await self.gateway.move_place(
            driver_code,
            vehicle_code,
            label_code,
            int(move_place_type),
            routing_sheet_code,
        )
        scan: LabelScan = await self.label_repository.add(
            driver_shift_id=shift_id,
            driver_code=driver_code,
            vehicle_code=vehicle_code,
            label_code=label_code,
            move_place_type=move_place_type,
        )
        await log_debug(f"Label {label_code} scan recorded ({scan.id})")
        return response

    async def check_loaded_places(self, shift_id: UUID, driver_code: str, vehicle_code: str) -> List[dict]:
        places = await self.gateway.check_loaded_places(driver_code, vehicle_code)
        if places and isinstance(places[0], dict) and places[0].get("generalDeliveryCode"):
            await self.label_repository.set_general_delivery_code(shift_id, places[0]["generalDeliveryCode"])
        return places

    async def clear_moved_places(self, driver_code: str, vehicle_code: str, routing_sheet_code: str) -> str:
        response = await self.gateway.clear_moved_places(driver_code, vehicle_code, routing_sheet_code)
        answer = str(response).strip()
        if answer not in CLEAR_MOVED_PLACES_OK:
            raise UnknownResponseError(desc=response)
        return answer

    async def clear_label_data(self, general_delivery_code: str) -> Any:
        """Resets test data in the logistics system for the label behind a general delivery code."""
        label_code = await self.label_repository.find_by_general_delivery_code(general_delivery_code)
        if not label_code:
            raise LabelNotFoundError()
        response = await self.gateway.clear_test_label_data(label_code)
        await log_warning(f"Test data cleared for label {label_code} ({general_delivery_code})")
        return response

    async def create_way_bill(self, driver_code: str, vehicle_code: str) -> Any:
        return await self.gateway.create_way_bill(driver_code, vehicle_code)

    async def check_opened_way_bill(self, driver_code: str, vehicle_code: str) -> Any:
        return await self.gateway.check_opened_way_bill(driver_code, vehicle_code)

    # ------------------------------------------------------------------
    # Admin views
    # ------------------------------------------------------------------

    async def query_routes(self, query_filter: RouteQueryFilter) -> Union[int, List[Route]]:
        if query_filter.count:
            return await self.repository.count(query_filter)
        return await self.repository.query(query_filter)

    async def get_route_history_by_id(self, internal_id: UUID) -> List[RouteUpdateLog]:
        route = await self.repository.get_by_id(internal_id)
        if not route:
            raise NotFoundError("ROUTE_NOT_FOUND")
        return await self.repository.list_logs(internal_id)

    async def delete_route(self, internal_id: UUID) -> None:
        if not await self.repository.delete(internal_id):
            raise NotFoundError("ROUTE_NOT_FOUND")
        await log_warning(f"Route {internal_id} deleted by admin")

    async def list_driver_shifts(self, limit: int, offset: int, count: bool = False) -> Union[int, List[DriverShift]]:
        if count:
            return await self.shift_repository.count()
        return await self.shift_repository.list(limit=limit, offset=offset)


