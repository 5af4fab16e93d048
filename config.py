"""
config.py — Environment-based configuration using Pydantic Settings.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RR_",
        case_sensitive=False,
    )

    # ── Enhancement ──────────────────────────────────────────────────────
    read_rate: float = 0.004  # approx. royalty per KENP page read
    default_region: str = "US"
    default_marketplace: str = "amazon.com"

    # ── Classification ───────────────────────────────────────────────────
    title_min_length: int = 3
    title_max_length: int = 300
    title_caps_allowed_below: int = 20
    units_ceiling: int = 10000
    min_table_cells: int = 2

    # ── Named globals ────────────────────────────────────────────────────
    # Comma-separated; only these page globals are ever read
    global_allowlist: str = (
        "kdpData,reportData,booksData,__INITIAL_STATE__,__NEXT_DATA__,appData"
    )

    # ── Reconciliation ───────────────────────────────────────────────────
    match_prefix_length: int = 20

    # ── Analytics ────────────────────────────────────────────────────────
    top_titles_limit: int = 5
    trend_months: int = 12

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "text"  # json | text
    log_file: Optional[str] = None

    # ── Computed Properties ──────────────────────────────────────────────

    @property
    def global_allowlist_names(self) -> list[str]:
        return [n.strip() for n in self.global_allowlist.split(",") if n.strip()]

    @field_validator("read_rate")
    @classmethod
    def validate_read_rate(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("read_rate must be positive")
        return v

    @field_validator("match_prefix_length")
    @classmethod
    def validate_match_prefix_length(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("match_prefix_length must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        valid = {"json", "text"}
        if v.lower() not in valid:
            raise ValueError(f"log_format must be one of {valid}")
        return v.lower()


@lru_cache
def get_settings() -> Settings:
    return Settings()


# ============================================================
# Logging
# ============================================================

class JsonLineFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file, encoding="utf-8"))

    if settings.log_format == "json":
        formatter: logging.Formatter = JsonLineFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    for h in handlers:
        h.setFormatter(formatter)

    logging.basicConfig(level=settings.log_level, handlers=handlers, force=True)
