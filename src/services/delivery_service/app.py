# src/services/delivery_service/app.py
"""
FastAPI приложение сервиса доставки.
Порт: 8095

Жизненный цикл: PostgreSQL обязателен; Redis и RabbitMQ опциональны
(без Redis справочники не кэшируются, без RabbitMQ события не публикуются).
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning, setup_logging
from src.config import settings
from src.infra.database import close_db, get_db, init_db
from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from src.infra.logistics_api import ExternalApiError, close_logistics_api, get_logistics_api
from src.infra.redis_client import close_redis, get_redis, init_redis
from src.services.delivery_service.admin_routes import admins_router
from src.services.delivery_service.admin_routes import router as admin_router
from src.services.delivery_service.auth_routes import router as auth_router
from src.services.delivery_service.dependencies import drain_background_tasks
from src.services.delivery_service.errors import DeliveryError
from src.services.delivery_service.routes import router as delivery_router
from src.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "delivery_service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_db()

    try:
        await init_redis()
    except Exception as e:
        await log_warning(f"Redis недоступен, кэш справочников отключён: {e}")
    try:
        await init_event_bus()
    except Exception as e:
        await log_warning(f"RabbitMQ недоступен, события не публикуются: {e}")

    get_logistics_api()
    await log_info(f"{SERVICE_NAME} запущен", type_msg=TypeMsg.INFO)
    yield

    await drain_background_tasks()
    await close_logistics_api()
    await close_event_bus()
    await close_redis()
    await close_db()
    await log_info(f"{SERVICE_NAME} остановлен", type_msg=TypeMsg.INFO)


app = FastAPI(
    title="Delivery Service",
    version=settings.system.VERSION,
    lifespan=lifespan,
)

app.include_router(auth_router, prefix="/api/v1")
app.include_router(delivery_router, prefix="/api/v1")
app.include_router(admins_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")


# === ERROR HANDLERS ===

@app.exception_handler(DeliveryError)
async def delivery_error_handler(request: Request, exc: DeliveryError) -> JSONResponse:
    if exc.status_code >= 500:
        await log_error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_public())


@app.exception_handler(ExternalApiError)
async def external_api_error_handler(request: Request, exc: ExternalApiError) -> JSONResponse:
    await log_error(f"{request.method} {request.url.path}: logistics API error {exc.desc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.code, desc=exc.desc).to_public(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "param": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "msg": error.get("msg"),
            "location": error.get("loc", ("",))[0],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="BAD_PARAMETERS", errors=errors).to_public(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    await log_error(f"{request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="INTERNAL_SERVER_ERROR").to_public(),
    )


@app.get("/health")
async def health_check():
    dependencies = {
        "postgres": "ok" if get_db().is_connected and await get_db().health_check() else "down",
        "redis": "ok" if get_redis().is_connected and await get_redis().health_check() else "down",
        "rabbitmq": "ok" if await get_event_bus().health_check() else "down",
        "logistics_api": "ok" if await get_logistics_api().health_check() else "down",
    }
    status = "healthy" if dependencies["postgres"] == "ok" else "unhealthy"
    health = HealthStatus(
        service=SERVICE_NAME,
        status=status,
        version=settings.system.VERSION,
        dependencies=dependencies,
    )
    return JSONResponse(status_code=200 if status == "healthy" else 503, content=health.model_dump())
