"""Pytest configuration and fixtures."""

from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from stocksync.context import AppContext, build_context
from stocksync.errors import TransportError
from stocksync.main import create_app
from stocksync.models import Product
from stocksync.services.feed_client import FeedResponse


class FakeFeedClient:
    """Remplace l'appel HTTP : renvoie la réponse configurée et garde la trace des appels."""

    def __init__(self) -> None:
        self.status_code = 200
        self.body = ""
        self.error: Optional[str] = None
        self.calls: List[dict] = []

    def respond(self, body: str, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code
        self.error = None

    def fail(self, reason: str) -> None:
        self.error = reason

    def get(self, url: str, timeout: int = 60, verify_tls: bool = True) -> FeedResponse:
        self.calls.append({"url": url, "timeout": timeout, "verify_tls": verify_tls})
        if self.error:
            raise TransportError(self.error)
        return FeedResponse(status_code=self.status_code, body=self.body)


class FakeTicker:
    """Minuterie inerte : enregistre l'armement sans lancer de thread."""

    created: List["FakeTicker"] = []

    def __init__(self, name, callback, interval, first_delay=60, poll_interval=1.0) -> None:
        self.name = name
        self.callback = callback
        self.interval = interval
        self.first_delay = first_delay
        self.started = False
        self.cancelled = False
        self.next_fire = None
        FakeTicker.created.append(self)

    def start(self) -> None:
        self.started = True
        self.next_fire = 1_000_000.0 + self.first_delay

    def cancel(self) -> None:
        self.cancelled = True
        self.next_fire = None

    def fire(self):
        return self.callback()


@pytest.fixture(scope="function")
def engine():
    """
    Moteur SQLite en mémoire, partagé par toutes les sessions du test (StaticPool).
    Chaque test repart d'une base vide.
    """
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def feed() -> FakeFeedClient:
    return FakeFeedClient()


@pytest.fixture(scope="function")
def ctx(engine, feed) -> AppContext:
    FakeTicker.created = []
    return build_context(bind=engine, feed_client=feed, ticker_factory=FakeTicker)


@pytest.fixture(scope="function")
def fake_ticker(ctx):
    """Classe des minuteries du contexte ; `fake_ticker.created` liste celles armées pendant le test."""
    return FakeTicker


@pytest.fixture(scope="function")
def add_product(ctx):
    """Insère un produit dans le catalogue et le retourne."""

    def _add(sku: str, quantity: Optional[int] = None, manage_stock: bool = True, name: str = "") -> Product:
        with ctx.session_factory() as session:
            product = Product(sku=sku, name=name or sku, quantity=quantity, manage_stock=manage_stock)
            session.add(product)
            session.commit()
            session.refresh(product)
            return product

    return _add


@pytest.fixture(scope="function")
def get_product(ctx):
    def _get(sku: str) -> Optional[Product]:
        entry_id = ctx.catalog.find_id_by_sku(sku)
        if entry_id is None:
            return None
        return ctx.catalog.load(entry_id).product

    return _get


@pytest.fixture(scope="function")
def configure(ctx):
    """Enregistre des réglages de synchro (sans passer par la replanification)."""

    def _configure(**changes):
        settings = ctx.settings_store.load().model_copy(update=changes)
        ctx.settings_store.save(settings)
        return settings

    return _configure


@pytest.fixture(scope="function")
def client(ctx) -> TestClient:
    return TestClient(create_app(ctx, autostart=False))


def pytest_configure(config):
    """Enregistre les marqueurs pytest."""
    config.addinivalue_line("markers", "unit: tests unitaires (sans base)")
    config.addinivalue_line("markers", "integration: tests avec base SQLite en mémoire")
