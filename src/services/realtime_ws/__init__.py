# src/services/realtime_ws/__init__.py
"""
Live-канал геолокации сотрудников.

Обеспечивает:
- WebSocket соединения наблюдателей (/ws)
- Приветствие {"type": "hello", "ts": ...} при подключении
- Рассылку {"type": "location", "payload": ...} после каждого принятого отчёта
"""
