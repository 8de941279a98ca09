from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field

from .types import UtcDateTime


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Product(SQLModel, table=True):
    __tablename__ = "product"

    id: Optional[int] = Field(default=None, primary_key=True)
    sku: str = Field(index=True, unique=True)
    name: str = Field(default="")
    quantity: Optional[int] = Field(default=None)  # None = stock jamais renseigné
    manage_stock: bool = Field(default=False)

    created_at: datetime = Field(default_factory=now_utc, sa_type=UtcDateTime)
    updated_at: datetime = Field(default_factory=now_utc, sa_type=UtcDateTime)


class ProductCreate(SQLModel):
    sku: str
    name: str = ""
    quantity: Optional[int] = None
    manage_stock: bool = False


class ProductRead(SQLModel):
    id: int
    sku: str
    name: str
    quantity: Optional[int] = None
    manage_stock: bool
    updated_at: datetime
