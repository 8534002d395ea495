from typing import Annotated, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.common.logger import log_info
from src.core.auth.token_service import TokenClaims, TokenService, get_token_service
from src.services.delivery_service.admin_service import AdminService
from src.services.delivery_service.dependencies import get_admin_service, get_delivery_service
from src.services.delivery_service.service import DeliveryService

router = APIRouter(tags=["Auth"])


class LoginRequest(BaseModel):
    driverCode: Optional[str] = None
    vehicleCode: Optional[str] = None


class AdminLoginRequest(BaseModel):
    login: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None


@router.post("/login")
async def login(
    request: LoginRequest,
    service: Annotated[DeliveryService, Depends(get_delivery_service)],
    token_service: Annotated[TokenService, Depends(get_token_service)],
):
    """
    Without both codes the caller gets an anonymous token (client app).
    With both codes a new driver shift is opened.
    """
    if not request.driverCode or not request.vehicleCode:
        return {"status": "OK", "access_token": token_service.generate_access_token(TokenClaims.for_anonymous())}

    shift = await service.open_driver_shift(request.driverCode, request.vehicleCode)
    claims = TokenClaims.for_driver_shift(str(shift.id), shift.driver_code, shift.vehicle_code)
    return {"status": "OK", "access_token": token_service.generate_access_token(claims)}


@router.post("/admin/login")
async def admin_login(
    request: AdminLoginRequest,
    service: Annotated[AdminService, Depends(get_admin_service)],
):
    admin, access_token, refresh_token = await service.login(request.login, request.password)
    await log_info(f"Admin {admin.login} logged in")
    return {
        "status": "OK",
        "access_token": access_token,
        "refresh_token": refresh_token,
        "claims": admin.claims,
    }


@router.post("/refresh-token")
async def refresh_token(
    request: RefreshTokenRequest,
    service: Annotated[AdminService, Depends(get_admin_service)],
):
    return {"status": "OK", "access_token": await service.refresh(request.refresh_token)}
