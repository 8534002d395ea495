from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, field_validator

from src.core.auth.token_service import TokenClaims
from src.services.delivery_service.batch import BatchItem, BatchRequestHandler
from src.services.delivery_service.dependencies import (
    get_current_driver,
    get_current_shift,
    get_delivery_service,
    get_token_claims,
)
from src.services.delivery_service.errors import NotFoundError
from src.services.delivery_service.service import DeliveryService
from src.shared.models.common import OkResponse
from src.shared.models.enums import MovePlaceType, RouteStatus
from src.shared.models.route import CompleteRouteData, RejectRouteData, RouteLocation
from src.shared.models.shift import DriverShift

router = APIRouter(tags=["Delivery"])


class RouteRequest(BaseModel):
    id: str = Field(..., min_length=1, description="Route id from the routing sheet")
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)

    @property
    def location(self) -> RouteLocation:
        return RouteLocation(lat=self.lat, lon=self.lon)


class UpdateRouteRequest(RouteRequest):
    status: RouteStatus

    @field_validator("status")
    @classmethod
    def non_terminal(cls, v: RouteStatus) -> RouteStatus:
        if v.is_terminal:
            raise ValueError("final statuses are set via /route/complete or /route/reject")
        return v


class CompleteRouteRequest(RouteRequest):
    signature: str = Field(..., min_length=1)
    contactPersonId: Optional[str] = None
    note: Optional[str] = None
    images: List[str] = Field(default_factory=list)


class RejectRouteRequest(RouteRequest):
    reason: str = Field(..., min_length=1)
    note: Optional[str] = None


class MovePlaceRequest(BaseModel):
    movePlaceType: MovePlaceType
    labelCode: str = Field(..., min_length=1)
    routingSheetCode: Optional[str] = None


class RoutingSheetCodeRequest(BaseModel):
    routingSheetCode: str = Field(..., min_length=1)


def ok(data) -> dict:
    return OkResponse(data=data).model_dump()


@router.get("/driver/{code}")
async def get_driver(
    code: str,
    _: Annotated[TokenClaims, Depends(get_token_claims)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    driver = await service.get_driver_info(code)
    if not driver:
        raise NotFoundError("DRIVER_NOT_FOUND")
    return ok(driver)


@router.get("/vehicle/{code}")
async def get_vehicle(
    code: str,
    _: Annotated[TokenClaims, Depends(get_token_claims)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    vehicle = await service.get_vehicle_info(code)
    if not vehicle:
        raise NotFoundError("VEHICLE_NOT_FOUND")
    return ok(vehicle)


@router.get("/routing-sheet")
async def get_routing_sheet(
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    routes = await service.fetch_routing_sheet(claims.subject_id, claims.driver_code, claims.vehicle_code)
    return ok([route.to_public() for route in routes])


@router.put("/route")
async def update_route_status(
    request: UpdateRouteRequest,
    shift: Annotated[DriverShift, Depends(get_current_shift)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    route = await service.find_route(request.id, shift.id)
    route = await service.update_route_status(route, request.status, request.location)
    return ok(route.to_public())


@router.put("/route/complete")
async def complete_route(
    request: CompleteRouteRequest,
    shift: Annotated[DriverShift, Depends(get_current_shift)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    route = await service.find_route(request.id, shift.id)
    route = await service.complete_route(
        route,
        CompleteRouteData(
            signature=request.signature,
            location=request.location,
            contact_person_id=request.contactPersonId,
            note=request.note,
            images=request.images,
        ),
    )
    return ok(route.to_public())


@router.put("/route/reject")
async def reject_route(
    request: RejectRouteRequest,
    shift: Annotated[DriverShift, Depends(get_current_shift)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    route = await service.find_route(request.id, shift.id)
    route = await service.reject_route(
        route,
        RejectRouteData(reason=request.reason, location=request.location, note=request.note),
    )
    return ok(route.to_public())


@router.get("/route/{route_id}/history")
async def get_route_history(
    route_id: str,
    shift: Annotated[DriverShift, Depends(get_current_shift)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    route = await service.find_route(route_id, shift.id)
    logs = await service.get_route_history(route)
    return ok([entry.to_public() for entry in logs])


@router.post("/create-delivery-entry-header")
async def create_delivery_entry_header(
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(await service.create_delivery_entry_header(claims.driver_code, claims.vehicle_code))


@router.post("/close-delivery-entry-header")
async def close_delivery_entry_header(
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(await service.close_delivery_entry_header(claims.driver_code, claims.vehicle_code))


@router.post("/move-place")
async def move_place(
    request: MovePlaceRequest,
    shift: Annotated[DriverShift, Depends(get_current_shift)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    response = await service.move_place(
        shift_id=shift.id,
        driver_code=shift.driver_code,
        vehicle_code=shift.vehicle_code,
        label_code=request.labelCode,
        move_place_type=request.movePlaceType,
        routing_sheet_code=request.routingSheetCode,
    )
    return ok(response)


@router.post("/check-loaded-places")
async def check_loaded_places(
    shift: Annotated[DriverShift, Depends(get_current_shift)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(await service.check_loaded_places(shift.id, shift.driver_code, shift.vehicle_code))


@router.post("/close-routing-sheet")
async def close_routing_sheet(
    request: RoutingSheetCodeRequest,
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(
        await service.close_routing_sheet(claims.driver_code, claims.vehicle_code, request.routingSheetCode)
    )


@router.post("/clear-moved-places")
async def clear_moved_places(
    request: RoutingSheetCodeRequest,
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(
        await service.clear_moved_places(claims.driver_code, claims.vehicle_code, request.routingSheetCode)
    )


@router.post("/check-opened-way-bill")
async def check_opened_way_bill(
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(await service.check_opened_way_bill(claims.driver_code, claims.vehicle_code))


@router.post("/delivery/print")
async def print_way_bill(
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(await service.create_way_bill(claims.driver_code, claims.vehicle_code))


@router.delete("/delivery/label/{general_delivery_code}")
async def clear_label_data(
    general_delivery_code: str,
    claims: Annotated[TokenClaims, Depends(get_current_driver)],
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
):
    return ok(await service.clear_label_data(general_delivery_code))


@router.post("/bulk-request")
async def bulk_request(
    items: List[BatchItem],
    request: Request,
    _: Annotated[TokenClaims, Depends(get_token_claims)],
):
    handler = BatchRequestHandler(request.app, dict(request.headers))
    return ok(await handler.run(items))
