# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные и адреса сервисов переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, field_validator
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


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "ride_match"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    COMPONENT_MODE: str = "all"


class DeploymentSettings(BaseModel):
    """Настройки развертывания компонентов."""
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8085


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_TO_FILE: bool = True
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class DatabaseSettings(BaseModel):
    """Настройки хранилища (PostgreSQL или память процесса)."""
    DB_BACKEND: str = "postgres"
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "ride_match"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 5
    DB_MAX_POOL_SIZE: int = 20
    DB_COMMAND_TIMEOUT: int = 60

    @field_validator("DB_BACKEND")
    @classmethod
    def check_backend(cls, v: str) -> str:
        """Допустимы только postgres и memory."""
        if v not in ("postgres", "memory"):
            raise ValueError(f"Неизвестный backend хранилища: {v}")
        return v

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


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_QUEUE: str = "ride_match.events"

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class MatchingSettings(BaseModel):
    """Настройки подбора кандидатов."""
    MATCH_RADIUS_KM: float = 10.0
    MATCH_TIME_WINDOW_MINUTES: int = 20
    MAX_CANDIDATES: int = 10


class IntakeSettings(BaseModel):
    """Настройки цикла приёма событий."""
    BATCH_SIZE: int = 10
    POLL_WAIT_SECONDS: float = 20.0
    IDLE_SLEEP_SECONDS: float = 1.0
    RETRY_BACKOFF_SECONDS: float = 1.0
    RETRY_BACKOFF_MAX_SECONDS: float = 30.0
    CAS_MAX_ATTEMPTS: int = 5
    REQUEUE_DELAY_SECONDS: float = 10.0


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = SystemSettings()
    deployment: DeploymentSettings = DeploymentSettings()
    logging: LoggingSettings = LoggingSettings()
    database: DatabaseSettings = DatabaseSettings()
    rabbitmq: RabbitMQSettings = RabbitMQSettings()
    matching: MatchingSettings = MatchingSettings()
    intake: IntakeSettings = IntakeSettings()

    @classmethod
    def from_config_json(cls, path: Path | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Секреты и адреса переопределяются из переменных окружения.
        """
        data = load_config_json(path)

        return cls(
            system=SystemSettings(
                PROJECT_NAME=data.get("PROJECT_NAME", "ride_match"),
                VERSION=data.get("VERSION", "1.0.0"),
                DEBUG=data.get("DEBUG", True),
                ENVIRONMENT=data.get("ENVIRONMENT", "development"),
                COMPONENT_MODE=os.getenv("COMPONENT_MODE", data.get("COMPONENT_MODE", "all")),
            ),
            deployment=DeploymentSettings(
                API_HOST=data.get("API_HOST", "0.0.0.0"),
                API_PORT=int(os.getenv("API_PORT", data.get("API_PORT", 8085))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=data.get("LOG_LEVEL", "DEBUG"),
                LOG_TO_FILE=data.get("LOG_TO_FILE", True),
                LOG_FILE_PATH=data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=data.get("LOG_FORMAT", "json"),
                LOG_MAX_BYTES=data.get("LOG_MAX_BYTES", 10485760),
            ),
            database=DatabaseSettings(
                DB_BACKEND=os.getenv("DB_BACKEND", data.get("DB_BACKEND", "postgres")),
                DB_HOST=os.getenv("DB_HOST", data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", data.get("DB_NAME", "ride_match")),
                DB_USER=os.getenv("DB_USER", data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", data.get("DB_PASSWORD", "")),
                DB_MIN_POOL_SIZE=data.get("DB_MIN_POOL_SIZE", 5),
                DB_MAX_POOL_SIZE=data.get("DB_MAX_POOL_SIZE", 20),
                DB_COMMAND_TIMEOUT=data.get("DB_COMMAND_TIMEOUT", 60),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_HOST=os.getenv("RABBITMQ_HOST", data.get("RABBITMQ_HOST", "localhost")),
                RABBITMQ_PORT=int(os.getenv("RABBITMQ_PORT", data.get("RABBITMQ_PORT", 5672))),
                RABBITMQ_USER=os.getenv("RABBITMQ_USER", data.get("RABBITMQ_USER", "guest")),
                RABBITMQ_PASSWORD=os.getenv("RABBITMQ_PASSWORD", data.get("RABBITMQ_PASSWORD", "guest")),
                RABBITMQ_VHOST=data.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_QUEUE=os.getenv("RABBITMQ_QUEUE", data.get("RABBITMQ_QUEUE", "ride_match.events")),
            ),
            matching=MatchingSettings(
                MATCH_RADIUS_KM=data.get("MATCH_RADIUS_KM", 10.0),
                MATCH_TIME_WINDOW_MINUTES=data.get("MATCH_TIME_WINDOW_MINUTES", 20),
                MAX_CANDIDATES=data.get("MAX_CANDIDATES", 10),
            ),
            intake=IntakeSettings(
                BATCH_SIZE=data.get("INTAKE_BATCH_SIZE", 10),
                POLL_WAIT_SECONDS=data.get("INTAKE_POLL_WAIT_SECONDS", 20.0),
                IDLE_SLEEP_SECONDS=data.get("INTAKE_IDLE_SLEEP_SECONDS", 1.0),
                RETRY_BACKOFF_SECONDS=data.get("INTAKE_RETRY_BACKOFF_SECONDS", 1.0),
                RETRY_BACKOFF_MAX_SECONDS=data.get("INTAKE_RETRY_BACKOFF_MAX_SECONDS", 30.0),
                CAS_MAX_ATTEMPTS=data.get("CAS_MAX_ATTEMPTS", 5),
                REQUEUE_DELAY_SECONDS=data.get("INTAKE_REQUEUE_DELAY_SECONDS", 10.0),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Перед чтением конфига подгружает .env из корня проекта.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
