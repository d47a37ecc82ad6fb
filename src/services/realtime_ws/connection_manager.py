# src/services/realtime_ws/connection_manager.py
"""
Менеджер WebSocket соединений наблюдателей.

Каждое закоммиченное изменение положения рассылается всем подключённым
наблюдателям. У каждого наблюдателя своя ограниченная очередь и своя
задача-отправитель, поэтому:
- publish() не ждёт сети и никогда не бросает исключений;
- медленный наблюдатель не задерживает остальных;
- порядок сообщений для наблюдателя совпадает с порядком вызовов publish();
- переполненная очередь, ошибка или таймаут отправки — наблюдатель отключается.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket

from src.common.constants import WsMessageType
from src.common.exceptions import DeliveryError
from src.common.logger import get_logger
from src.shared.models.location import LiveEvent

logger = get_logger("location_tracker.ws")


@dataclass
class ConnectionInfo:
    """Информация о соединении наблюдателя."""
    websocket: WebSocket
    connection_id: int
    queue: asyncio.Queue[str]
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sender: asyncio.Task | None = None
    messages_sent: int = 0


def hello_message() -> dict[str, Any]:
    """Приветствие: серверное время в миллисекундах для проверки живости."""
    return {"type": WsMessageType.HELLO.value, "ts": int(time.time() * 1000)}


class ConnectionManager:
    """
    Broadcast hub для live-канала.

    Поддерживает:
    - Регистрацию/отключение наблюдателей
    - Неблокирующую рассылку событий всем наблюдателям
    - Вытеснение медленных и мёртвых наблюдателей
    - Статистику
    """

    def __init__(self, queue_size: int = 256, send_timeout: float = 5.0) -> None:
        self._queue_size = queue_size
        self._send_timeout = send_timeout
        self._ids = itertools.count(1)

        # id(websocket) -> ConnectionInfo
        self._connections: dict[int, ConnectionInfo] = {}

        # Для статистики
        self._total_connections: int = 0
        self._total_published: int = 0
        self._total_messages_sent: int = 0
        self._total_evicted: int = 0
        self._total_dropped: int = 0

        # Задачи закрытия сокетов вытесненных наблюдателей
        self._closing: set[asyncio.Task] = set()

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._connections)

    def is_registered(self, websocket: WebSocket) -> bool:
        return id(websocket) in self._connections

    async def register(self, websocket: WebSocket, accept: bool = True) -> ConnectionInfo:
        """
        Подключить наблюдателя.

        Приветствие ставится в очередь первым, поэтому наблюдатель всегда
        получает его раньше любого события. События, опубликованные до
        регистрации, не переигрываются.
        """
        if accept:
            await websocket.accept()

        key = id(websocket)
        existing = self._connections.get(key)
        if existing is not None:
            return existing

        conn = ConnectionInfo(
            websocket=websocket,
            connection_id=next(self._ids),
            queue=asyncio.Queue(maxsize=self._queue_size),
        )
        conn.queue.put_nowait(json.dumps(hello_message()))
        self._connections[key] = conn
        conn.sender = asyncio.create_task(
            self._sender_loop(conn),
            name=f"ws-sender-{conn.connection_id}",
        )
        self._total_connections += 1

        logger.debug(
            f"Наблюдатель #{conn.connection_id} подключён, активных: {self.active_connections}"
        )
        return conn

    async def unregister(self, websocket: WebSocket) -> None:
        """Отключить наблюдателя. Повторный вызов ничего не делает."""
        conn = self._connections.pop(id(websocket), None)
        if conn is None:
            return

        self._stop_sender(conn)
        self._discard_pending(conn)
        logger.debug(
            f"Наблюдатель #{conn.connection_id} отключён, активных: {self.active_connections}"
        )

    def publish(self, event: LiveEvent) -> int:
        """
        Поставить событие в очереди всех наблюдателей.

        Сериализация выполняется один раз. Итерация идёт по снимку списка
        соединений, поэтому параллельные register/unregister безопасны.

        Returns:
            Количество наблюдателей, которым событие поставлено в очередь
        """
        message = json.dumps(event.to_message(), ensure_ascii=False)
        self._total_published += 1

        queued = 0
        for conn in list(self._connections.values()):
            try:
                conn.queue.put_nowait(message)
                queued += 1
            except asyncio.QueueFull:
                self._total_dropped += 1
                self._evict(conn, DeliveryError("Очередь отправки переполнена"))

        return queued

    async def send_personal(self, websocket: WebSocket, message: dict[str, Any]) -> bool:
        """
        Поставить сообщение в очередь одного наблюдателя (например, pong).

        Returns:
            True если сообщение поставлено в очередь
        """
        conn = self._connections.get(id(websocket))
        if conn is None:
            return False
        try:
            conn.queue.put_nowait(json.dumps(message, ensure_ascii=False))
            return True
        except asyncio.QueueFull:
            self._total_dropped += 1
            self._evict(conn, DeliveryError("Очередь отправки переполнена"))
            return False

    async def wait_idle(self, timeout: float = 1.0) -> bool:
        """
        Дождаться, пока очереди текущих наблюдателей опустеют.

        Returns:
            True если все очереди обработаны за timeout
        """
        joins = [conn.queue.join() for conn in list(self._connections.values())]
        if not joins:
            return True
        try:
            await asyncio.wait_for(asyncio.gather(*joins), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def close_all(self, drain_timeout: float = 1.0) -> None:
        """Отправить оставшееся (с таймаутом) и закрыть все соединения."""
        await self.wait_idle(timeout=drain_timeout)

        connections = list(self._connections.values())
        self._connections.clear()
        for conn in connections:
            self._stop_sender(conn)
            self._discard_pending(conn)

        senders = [conn.sender for conn in connections if conn.sender is not None]
        if senders:
            await asyncio.gather(*senders, return_exceptions=True)

        await asyncio.gather(*(self._close_connection(conn) for conn in connections))
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "total_connections_ever": self._total_connections,
            "total_events_published": self._total_published,
            "total_messages_sent": self._total_messages_sent,
            "total_evicted": self._total_evicted,
            "total_dropped": self._total_dropped,
        }

    # ------------------------------------------------------------------
    # Внутреннее
    # ------------------------------------------------------------------

    async def _sender_loop(self, conn: ConnectionInfo) -> None:
        """Отправлять сообщения очереди по порядку, пока соединение живо."""
        while True:
            message = await conn.queue.get()
            try:
                await asyncio.wait_for(
                    conn.websocket.send_text(message),
                    timeout=self._send_timeout,
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                reason = "таймаут отправки" if isinstance(e, asyncio.TimeoutError) else str(e)
                self._evict(conn, DeliveryError(f"Ошибка отправки: {reason}"))
                return
            else:
                conn.messages_sent += 1
                self._total_messages_sent += 1
            finally:
                conn.queue.task_done()

    def _evict(self, conn: ConnectionInfo, error: DeliveryError) -> None:
        """Убрать наблюдателя из рассылки после ошибки доставки и закрыть сокет."""
        if self._connections.get(id(conn.websocket)) is not conn:
            return

        del self._connections[id(conn.websocket)]
        self._total_evicted += 1
        logger.warning(
            f"Наблюдатель #{conn.connection_id} отключён: {error.message}",
            extra={"extra_data": {"connection_id": conn.connection_id}},
        )

        # Если _evict вызван самим отправителем, он уже завершается
        if conn.sender is not asyncio.current_task():
            self._stop_sender(conn)
        self._discard_pending(conn)

        task = asyncio.create_task(self._close_connection(conn))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    @staticmethod
    def _stop_sender(conn: ConnectionInfo) -> None:
        if conn.sender is not None and not conn.sender.done():
            conn.sender.cancel()

    def _discard_pending(self, conn: ConnectionInfo) -> None:
        """Выбросить неотправленные сообщения, чтобы queue.join() не зависал."""
        while True:
            try:
                conn.queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            conn.queue.task_done()
            self._total_dropped += 1

    async def _close_connection(self, conn: ConnectionInfo) -> None:
        """Закрыть соединение (клиент мог уже уйти)."""
        try:
            await asyncio.wait_for(conn.websocket.close(), timeout=self._send_timeout)
        except Exception as e:
            logger.debug(f"Соединение #{conn.connection_id} уже закрыто: {e}")
