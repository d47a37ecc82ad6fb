# src/services/__init__.py
"""
Сервисы приложения.

Сервисы:
- location_service: приём отчётов о положении, текущие положения, история (HTTP API)
- realtime_ws: live-канал наблюдателей (WebSocket /ws)
"""

__all__: list[str] = []
