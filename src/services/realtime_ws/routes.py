# src/services/realtime_ws/routes.py
"""
WebSocket endpoint live-канала.

Входящие сообщения:
- {"action": "ping"} → {"type": "pong"}
Остальные входящие сообщения (в том числе бинарные) игнорируются; чтение нужно, чтобы
заметить отключение клиента.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from src.common.constants import WsMessageType
from src.config import settings
from src.services.location_service.dependencies import get_connection_manager

router = APIRouter(tags=["Live"])


@router.websocket(settings.broadcast.WS_PATH)
async def websocket_observer(websocket: WebSocket) -> None:
    """Подключение наблюдателя к live-каналу."""
    manager = get_connection_manager()
    await manager.register(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            # Бинарные кадры игнорируются
            raw = message.get("text")
            if raw is not None:
                await _handle_client_message(websocket, raw)
    except WebSocketDisconnect:
        pass
    except RuntimeError:
        # Сокет закрыт сервером (наблюдатель вытеснен)
        pass
    finally:
        await manager.unregister(websocket)


async def _handle_client_message(websocket: WebSocket, raw: str) -> None:
    """Обработать сообщение от клиента."""
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError:
        return

    if isinstance(data, dict) and data.get("action") == "ping":
        await get_connection_manager().send_personal(websocket, {"type": WsMessageType.PONG.value})
