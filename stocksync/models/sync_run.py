from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from .product import now_utc
from .types import UtcDateTime


class SyncRun(SQLModel, table=True):
    __tablename__ = "sync_run"

    run_id: str = Field(primary_key=True, max_length=36)

    trigger: str = Field(default="manual")  # scheduled | manual
    status: str = Field(default="in-progress", index=True)  # in-progress | success | failed

    started_at: datetime = Field(default_factory=now_utc, index=True, sa_type=UtcDateTime)
    finished_at: Optional[datetime] = Field(default=None, sa_type=UtcDateTime)

    stats: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
