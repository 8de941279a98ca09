from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from .product import now_utc
from .types import UtcDateTime


class Option(SQLModel, table=True):
    """Stockage clé/valeur JSON (réglages, dernier run, verrou de synchro)."""

    __tablename__ = "option"

    name: str = Field(primary_key=True, max_length=64)
    value: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    expires_at: Optional[datetime] = Field(default=None, sa_type=UtcDateTime)  # None = pas d'expiration
    updated_at: datetime = Field(default_factory=now_utc, sa_type=UtcDateTime)
