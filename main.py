#!/usr/bin/env python3
# main.py
"""
Главная точка входа сервиса геолокации сотрудников.
Запускает HTTP/WebSocket сервер или только применяет схему БД.
"""

from __future__ import annotations

import asyncio
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.database import apply_schema, close_db, get_db


async def run_server() -> None:
    """Запускает сервис геолокации (HTTP API + /ws) через uvicorn."""
    import uvicorn

    await log_info(
        f"Запуск сервиса геолокации на {settings.server.HOST}:{settings.server.PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.location_service.app:app",
        host=settings.server.HOST,
        port=settings.server.PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    # uvicorn сам перехватывает SIGINT/SIGTERM и выполняет lifespan shutdown:
    # live-соединения закрываются, пул БД освобождается
    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Сервис геолокации: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_migrate() -> None:
    """Применяет схему БД и завершается."""
    db = get_db()
    try:
        await db.connect()
        await apply_schema(db)
    finally:
        await close_db()


async def main(mode: str = "serve") -> None:
    """Главная функция."""
    setup_logging()
    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}, режим: {mode}",
        type_msg=TypeMsg.INFO,
    )

    try:
        if mode == "migrate":
            await run_migrate()
        else:
            await run_server()
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Employee Location Tracker — приём геолокации сотрудников и live-канал

Использование:
    python main.py [mode]

Режимы:
    serve      — HTTP API + WebSocket /ws (по умолчанию)
    migrate    — применить migrations/init.sql и выйти

Окружение:
    HOST, PORT                              — адрес сервера (по умолчанию localhost:4000)
    DB_HOST, DB_PORT, DB_USER,
    DB_PASSWORD, DB_NAME, DB_CONN_LIMIT     — подключение к PostgreSQL
    """)


if __name__ == "__main__":
    mode = "serve"

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in ("serve", "migrate"):
            mode = arg
        else:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
