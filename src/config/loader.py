# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Параметры подключения и секреты переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "location_tracker"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"


class ServerSettings(BaseModel):
    """Настройки HTTP-сервера."""
    HOST: str = "localhost"
    PORT: int = 4000
    CORS_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])
    MAX_BODY_BYTES: int = 262144


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760
    LOG_BACKUP_COUNT: int = 5


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "location_tracker"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 1
    DB_CONN_LIMIT: int = 10
    DB_COMMAND_TIMEOUT: int = 30
    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY: float = 1.0

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class BroadcastSettings(BaseModel):
    """Настройки рассылки live-событий."""
    WS_PATH: str = "/ws"
    # Сколько сообщений может ждать отправки одному наблюдателю
    SEND_QUEUE_SIZE: int = 256
    # Таймаут одной отправки (секунды)
    SEND_TIMEOUT: float = 5.0


class QuerySettings(BaseModel):
    """Лимиты выборки истории."""
    HISTORY_DEFAULT_LIMIT: int = 500
    HISTORY_MAX_LIMIT: int = 5000


class RateLimitSettings(BaseModel):
    """Ограничение частоты запросов с одного IP."""
    ENABLED: bool = True
    REQUESTS_PER_MINUTE: int = 120


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    broadcast: BroadcastSettings = Field(default_factory=BroadcastSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    @classmethod
    def from_dict(cls, config_data: dict[str, Any]) -> "Settings":
        """
        Создаёт объект Settings из плоского словаря конфигурации.
        Параметры подключения переопределяются из переменных окружения.
        """
        # Фильтруем комментарии (ключи, начинающиеся с _comment_)
        data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "location_tracker"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", False),
                ENVIRONMENT=os.getenv("ENVIRONMENT", data.get("ENVIRONMENT", "development")),
            ),
            server=ServerSettings(
                HOST=os.getenv("HOST", data.get("HOST", "localhost")),
                PORT=int(os.getenv("PORT", data.get("PORT", 4000))),
                CORS_ORIGINS=data.get("CORS_ORIGINS", ["*"]),
                MAX_BODY_BYTES=data.get("MAX_BODY_BYTES", 262144),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=os.getenv("LOG_LEVEL", data.get("LOG_LEVEL", "INFO")),
                LOG_TO_FILE=data.get("LOG_TO_FILE", True),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "colored"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
                LOG_BACKUP_COUNT=data.get("LOG_BACKUP_COUNT", 5),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "location_tracker")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 1),
                DB_CONN_LIMIT=int(os.getenv("DB_CONN_LIMIT", data.get("DB_CONN_LIMIT", 10))),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 30),
                DB_RETRY_ATTEMPTS=data.get("DB_RETRY_ATTEMPTS", 3),
                DB_RETRY_DELAY=data.get("DB_RETRY_DELAY", 1.0),
            ),
            broadcast=BroadcastSettings(
                WS_PATH=data.get("WS_PATH", "/ws"),
                SEND_QUEUE_SIZE=data.get("BROADCAST_SEND_QUEUE_SIZE", 256),
                SEND_TIMEOUT=data.get("BROADCAST_SEND_TIMEOUT", 5.0),
            ),
            query=QuerySettings(
                HISTORY_DEFAULT_LIMIT=data.get("HISTORY_DEFAULT_LIMIT", 500),
                HISTORY_MAX_LIMIT=data.get("HISTORY_MAX_LIMIT", 5000),
            ),
            rate_limit=RateLimitSettings(
                ENABLED=data.get("RATE_LIMIT_ENABLED", True),
                REQUESTS_PER_MINUTE=data.get("RATE_LIMIT_REQUESTS_PER_MINUTE", 120),
            ),
        )

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Если файла нет — используются значения по умолчанию и окружение.
        """
        config_path = get_config_path()
        config_data = load_config_json() if config_path.exists() else {}
        return cls.from_dict(config_data)


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    # Загружаем .env файл
    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
