from typing import Any, Optional

from pydantic import field_validator
from sqlmodel import SQLModel

CUSTOM_INTERVAL_MIN = 1
CUSTOM_INTERVAL_MAX = 43200  # 30 jours

CUSTOM_SCHEDULE = "custom"
SCHEDULE_KEYS = (
    "every_5_minutes",
    "every_15_minutes",
    "every_30_minutes",
    "hourly",
    "twicedaily",
    "daily",
    "weekly",
    CUSTOM_SCHEDULE,
)


def clamp_custom_interval(minutes: Any) -> int:
    """Ramène un intervalle personnalisé (en minutes) dans [1, 43200]."""
    try:
        value = abs(int(minutes))
    except (TypeError, ValueError):
        value = 0
    return max(CUSTOM_INTERVAL_MIN, min(CUSTOM_INTERVAL_MAX, value))


class SyncSettings(SQLModel):
    """
    Réglages de la synchro CSV -> catalogue.
    Une copie fraîche est chargée au début de chaque run.
    """

    csv_url: str = ""
    sku_column: str = "sku"
    quantity_column: str = "quantity"
    ssl_verify: bool = True
    schedule: str = "hourly"
    custom_interval_minutes: int = 60
    enabled: bool = False

    @field_validator("csv_url", "sku_column", "quantity_column", "schedule", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return str(v).strip() if v is not None else ""

    @field_validator("custom_interval_minutes", mode="before")
    @classmethod
    def clamp_minutes(cls, v: Any) -> int:
        return clamp_custom_interval(v)

    @field_validator("csv_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("L'URL du CSV doit commencer par 'http://' ou 'https://'.")
        return v

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        if v not in SCHEDULE_KEYS:
            raise ValueError(f"Fréquence inconnue: {v}")
        return v


class SyncSettingsUpdate(SQLModel):
    """Payload partiel pour PUT /sync/settings."""

    csv_url: Optional[str] = None
    sku_column: Optional[str] = None
    quantity_column: Optional[str] = None
    ssl_verify: Optional[bool] = None
    schedule: Optional[str] = None
    custom_interval_minutes: Optional[int] = None
    enabled: Optional[bool] = None
