# src/services/location_service/app.py
"""
FastAPI приложение сервиса геолокации сотрудников.

Endpoints:
- GET  /health — проверка здоровья (БД)
- GET  /stats — статистика приёма и live-канала
- POST /api/location — принять отчёт о положении
- GET  /api/locations — текущие положения
- GET  /api/locations/{employee_id}/history — история сотрудника
- WS   /ws — live-канал наблюдателей
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.common.constants import TypeMsg
from src.common.exceptions import InvalidInputError, StorageError
from src.common.logger import log_error, log_info, log_warning, setup_logging
from src.config import settings
from src.infra.rate_limiter import RateLimiter
from src.services.location_service import dependencies
from src.services.location_service.routes import router as location_router
from src.services.realtime_ws.routes import router as ws_router
from src.shared.models.common import ErrorResponse, HealthStatus, StatsResponse


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Жизненный цикл приложения."""
    setup_logging()
    await log_info("Сервис геолокации запускается...", type_msg=TypeMsg.INFO)

    await dependencies.init_dependencies()
    await log_info(
        f"Сервис геолокации слушает http://{settings.server.HOST}:{settings.server.PORT}, "
        f"документация: /docs",
        type_msg=TypeMsg.INFO,
    )

    yield

    await dependencies.close_dependencies()
    await log_info("Сервис геолокации остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Собирает приложение.

    Args:
        use_lifespan: False — без подключения к БД (тесты подставляют свои зависимости)
    """
    app = FastAPI(
        title="Employee Location API",
        description="Приём геолокации сотрудников, история перемещений и live-канал.",
        version=settings.system.VERSION,
        lifespan=lifespan if use_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_middlewares(app)
    _register_exception_handlers(app)

    app.include_router(location_router)
    app.include_router(ws_router)

    @app.get("/health", tags=["Health"])
    async def health_check() -> JSONResponse:
        """Проверка здоровья сервиса и БД."""
        try:
            healthy = await dependencies.get_repository().ping()
        except RuntimeError:
            healthy = False

        if not healthy:
            return JSONResponse(HealthStatus(status="db_error").model_dump(), status_code=500)
        return JSONResponse(HealthStatus(status="ok").model_dump())

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats() -> StatsResponse:
        """Статистика приёма и live-канала."""
        return StatsResponse(
            ingest=dependencies.get_ingest_service().get_stats(),
            broadcast=dependencies.get_connection_manager().get_stats(),
        )

    return app


# =============================================================================
# MIDDLEWARE
# =============================================================================

# Не ограничиваются: проверка здоровья и документация
RATE_LIMIT_EXEMPT_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class BodySizeLimitMiddleware:
    """
    Ограничение размера тела запроса (413).

    Content-Length проверяется сразу. Тело без заголовка (chunked)
    читается до конца или до превышения лимита и затем передаётся
    приложению без изменений.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        content_length = Headers(scope=scope).get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self.max_bytes:
            await self._reject(scope, receive, send)
            return

        buffered: list[Message] = []
        received = 0
        while True:
            message = await receive()
            buffered.append(message)
            if message["type"] != "http.request":
                break
            received += len(message.get("body", b""))
            if received > self.max_bytes:
                await self._reject(scope, receive, send)
                return
            if not message.get("more_body", False):
                break

        async def replay() -> Message:
            if buffered:
                return buffered.pop(0)
            return await receive()

        await self.app(scope, replay, send)

    @staticmethod
    async def _reject(scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(
            ErrorResponse(error="Request body too large").model_dump(),
            status_code=413,
        )
        await response(scope, receive, send)


def _register_middlewares(app: FastAPI) -> None:
    limiter = RateLimiter(max_per_minute=settings.rate_limit.REQUESTS_PER_MINUTE)
    app.state.rate_limiter = limiter

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.server.MAX_BODY_BYTES)

    # Добавлен последним: выполняется раньше проверки тела
    @app.middleware("http")
    async def limit_requests(request: Request, call_next):
        """Ограничение частоты запросов."""
        if settings.rate_limit.ENABLED and request.url.path not in RATE_LIMIT_EXEMPT_PATHS:
            if not app.state.rate_limiter.try_acquire(_client_key(request)):
                return JSONResponse(
                    ErrorResponse(error="Too many requests").model_dump(),
                    status_code=429,
                )

        return await call_next(request)


# =============================================================================
# ОБРАБОТКА ОШИБОК
# =============================================================================

def _format_validation_error(exc: RequestValidationError) -> str:
    """Первое сообщение pydantic в виде '"field" message'."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    field = ".".join(loc)
    message = first.get("msg", "Invalid value")
    return f'"{field}" {message}' if field else message


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = _format_validation_error(exc)
        await log_warning(f"Отклонён запрос {request.method} {request.url.path}: {message}")
        return JSONResponse(ErrorResponse(error=message).model_dump(), status_code=400)

    @app.exception_handler(InvalidInputError)
    async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
        return JSONResponse(ErrorResponse(error=exc.message).model_dump(), status_code=400)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        await log_error(
            f"Ошибка хранилища на {request.method} {request.url.path}: {exc.__cause__ or exc}",
            extra=exc.details,
        )
        return JSONResponse(ErrorResponse(error="Database error").model_dump(), status_code=500)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            ErrorResponse(error=str(exc.detail)).model_dump(),
            status_code=exc.status_code,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        await log_error(f"Необработанная ошибка на {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(ErrorResponse(error="Internal server error").model_dump(), status_code=500)


app = create_app()


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.server.HOST, port=settings.server.PORT)
