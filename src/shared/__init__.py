# src/shared/__init__.py
"""
Общий код сервисов.

Модули:
- models: Pydantic-модели отчётов, положений, событий и ответов API
"""

__all__: list[str] = []
