import os
from typing import Callable

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

DEFAULT_DATABASE_URL = "sqlite:///./stocksync.db"

# préfixes réécrits vers le pilote psycopg 3
_PG_PREFIXES = ("postgres://", "postgresql://")


def normalize_database_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return DEFAULT_DATABASE_URL

    for prefix in _PG_PREFIXES:
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]

    return url


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite:"):
        options = {"connect_args": {"check_same_thread": False}}
    else:
        options = {
            "pool_pre_ping": True,
            "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
            "pool_recycle": 1800,
        }
    return create_engine(url, echo=False, **options)


DATABASE_URL = normalize_database_url(os.getenv("DATABASE_URL", ""))
engine = build_engine(DATABASE_URL)

print("[DB] Using DATABASE_URL =", engine.url.render_as_string(hide_password=True), flush=True)


SessionFactory = Callable[[], Session]


def make_session_factory(bind: Engine) -> SessionFactory:
    """
    Retourne une fabrique de sessions liée à un engine.
    expire_on_commit=False : les objets restent lisibles après commit
    (les entrées du catalogue vivent au-delà de leur session).
    """

    def _factory() -> Session:
        return Session(bind, expire_on_commit=False)

    return _factory


def init_db(bind: Engine = engine) -> None:
    # importe les tables pour les enregistrer dans la metadata
    from stocksync import models  # noqa: F401

    SQLModel.metadata.create_all(bind)
