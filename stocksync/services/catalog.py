# stocksync/services/catalog.py

from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from stocksync.db.session import SessionFactory
from stocksync.models import Product, now_utc


class CatalogEntry:
    """Un produit du catalogue, adressable par SKU."""

    def __init__(self, product: Product, session_factory: SessionFactory) -> None:
        self.product = product
        self._session_factory = session_factory

    @property
    def id(self) -> int:
        return self.product.id

    @property
    def sku(self) -> str:
        return self.product.sku

    def get_quantity(self) -> Optional[int]:
        return self.product.quantity

    def set_quantity(self, quantity: int) -> None:
        self.product.quantity = int(quantity)

    def is_tracking_enabled(self) -> bool:
        return bool(self.product.manage_stock)

    def set_tracking_enabled(self, enabled: bool) -> None:
        self.product.manage_stock = bool(enabled)

    def save(self) -> None:
        """Persiste l'entrée. Lève SQLAlchemyError en cas d'échec."""
        self.product.updated_at = now_utc()
        with self._session_factory() as session:
            session.add(self.product)
            session.commit()
            session.refresh(self.product)


class CatalogStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def is_available(self) -> bool:
        try:
            with self._session_factory() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def find_id_by_sku(self, sku: str) -> Optional[int]:
        with self._session_factory() as session:
            return session.exec(select(Product.id).where(Product.sku == sku)).first()

    def load(self, product_id: int) -> Optional[CatalogEntry]:
        with self._session_factory() as session:
            product = session.get(Product, product_id)
        if not product:
            return None
        return CatalogEntry(product, self._session_factory)
