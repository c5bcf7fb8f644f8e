"""Централизованная конфигурация приложения и загрузка переменных окружения."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Set, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from relay.core.paths import PACKAGE_DIR as _PACKAGE_DIR
from relay.core.paths import PROJECT_ROOT as _PROJECT_ROOT

_ENV_FILES: Tuple[str, ...] = (
    str(_PROJECT_ROOT / ".env"),
    str(_PACKAGE_DIR / ".env"),
)

OGL_ATTRIBUTION = (
    "Contains public sector information licensed under the Open Government Licence v3.0. "
    "Source: Department for Transport, Street Manager."
)


def _split_env_list(raw: str) -> List[str]:
    """Разбивает строку окружения в более гибком формате.

    Поддерживаются разделители запятая, точка с запятой и перевод строки.
    Пустые элементы и лишние пробелы автоматически отбрасываются.
    """

    if not raw:
        return []

    normalized = raw.replace("\r\n", "\n").replace("\r", "\n")
    normalized = normalized.replace("\n", ",").replace(";", ",")
    return [item.strip() for item in normalized.split(",") if item.strip()]


class Settings(BaseSettings):
    """Глобальные настройки сервиса, считываемые из .env и окружения."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_title: str = Field("Street Manager Relay")

    db_path: str = Field("data/street_manager.db")
    host: str = Field("0.0.0.0")
    port: int = Field(8080, ge=1, le=65535)
    debug: bool = Field(False)

    http_timeout: float = Field(10.0, gt=0.0)
    cert_cache_ttl_hours: float = Field(24.0, gt=0.0)
    cert_cache_cleanup_hours: float = Field(1.0, gt=0.0)
    refdata_cache_minutes: float = Field(10.0, ge=0.0)

    default_max_days_ahead: int = Field(7, ge=0)
    default_max_days_behind: int = Field(0, ge=0)
    attribution: str = Field(OGL_ATTRIBUTION)

    promoter_orgs_file: str = Field("data/organisations.csv")

    completed_retention_days: int = Field(0, ge=0)
    cleanup_interval_hours: float = Field(24.0, ge=0.0)

    frontend_origins: str = Field("")

    def resolve_project_path(self, raw_path: str | Path) -> Path:
        """Преобразует относительный путь в абсолютный относительно корня проекта."""

        path = Path(raw_path)
        if path.is_absolute():
            return path
        return (_PROJECT_ROOT / path).resolve()

    @property
    def db_file_path(self) -> Path:
        """Абсолютный путь до файла SQLite."""

        return self.resolve_project_path(self.db_path)

    @property
    def promoter_orgs_path(self) -> Path:
        return self.resolve_project_path(self.promoter_orgs_file)

    @property
    def cors_allow_origin_list(self) -> List[str]:
        """Возвращает отсортированный список Origin для CORS."""

        return sorted(self.cors_allow_origins)

    @property
    def cors_allow_origins(self) -> Set[str]:
        """Возвращает итоговый набор разрешённых Origin для CORS."""

        origins = set(_split_env_list(self.frontend_origins))
        origins.update({"http://localhost:3000", "http://127.0.0.1:3000"})
        return origins


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Фабрика с кэшированием для singleton-настроек."""

    return Settings()


settings: Settings = get_settings()

__all__ = ["Settings", "settings", "get_settings", "OGL_ATTRIBUTION"]
