from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from .product import now_utc
from .types import UtcDateTime

LEVEL_INFO = "info"
LEVEL_SUCCESS = "success"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"


class SyncLog(SQLModel, table=True):
    """Une entrée du journal de synchro. run_id vide = entrée système (orpheline)."""

    __tablename__ = "sync_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(default="", index=True, max_length=36)
    timestamp: datetime = Field(default_factory=now_utc, index=True, sa_type=UtcDateTime)
    level: str = Field(default=LEVEL_INFO, index=True, max_length=20)
    message: str
    context: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))


class SyncLogRead(SQLModel):
    id: int
    run_id: str
    timestamp: datetime
    level: str
    message: str
    context: Optional[Dict[str, Any]] = None


class SyncRunSummary(SQLModel):
    run_id: str
    trigger: str = "unknown"
    started_at: datetime
    ended_at: datetime
    duration: int = 0
    log_count: int = 0
    error_count: int = 0
    warning_count: int = 0
    final_stats: Optional[Dict[str, Any]] = None
    status: str = "in-progress"  # success | failed | in-progress | orphan
