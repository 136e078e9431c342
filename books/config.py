"""Environment-driven settings shared by the API and the CLI.

Values come from ``SHARELEDGER_*`` environment variables (or a ``.env`` file)
through pydantic-settings.
"""

from __future__ import annotations

import logging
from datetime import tzinfo
from pathlib import Path
from typing import FrozenSet, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "SHARELEDGER_"


def _split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Resolve an IANA zone name; empty means the host's local time."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone '{name}'") from exc


def resolve_log_level(name: Optional[str]) -> int:
    """Map a level name to its numeric value, falling back to INFO."""
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    env: str = Field(default="prod", description="dev/development opens CORS to every origin")
    data_dir: Path = Field(default=Path("data"), description="Directory holding the JSON tables")
    allowed_origins: str = Field(default="", description="Comma-separated CORS origins")
    allowed_users: str = Field(default="", description="Comma-separated API user allow-list")
    timezone: Optional[str] = Field(default=None, description="IANA zone for month bucketing")
    log_level: str = Field(default="INFO")
    user: Optional[str] = Field(default=None, description="Acting user id for the CLI")

    @field_validator("env")
    @classmethod
    def normalise_env(cls, v: str) -> str:
        return v.strip().lower() or "prod"

    @property
    def is_development(self) -> bool:
        return self.env in {"dev", "development"}

    @property
    def origin_list(self) -> List[str]:
        return _split_csv(self.allowed_origins)

    @property
    def user_allow_list(self) -> FrozenSet[str]:
        return frozenset(_split_csv(self.allowed_users))

    @property
    def tz(self) -> Optional[tzinfo]:
        return load_timezone(self.timezone)

    @property
    def log_level_value(self) -> int:
        return resolve_log_level(self.log_level)


def configure_logging(level: Optional[str] = "INFO") -> None:
    logging.basicConfig(
        level=resolve_log_level(level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
