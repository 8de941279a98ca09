# stocksync/context.py

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from stocksync.db.session import SessionFactory, engine as default_engine, init_db, make_session_factory
from stocksync.services.catalog import CatalogStore
from stocksync.services.feed_client import FeedClient
from stocksync.services.options import OptionStore, SettingsStore
from stocksync.services.run_logger import RunLogger
from stocksync.services.scheduler import DAY, MINUTE, Scheduler, Ticker
from stocksync.services.stock_syncer import StockSyncer

logger = logging.getLogger(__name__)

MAINTENANCE_FIRST_DELAY = 5 * MINUTE


@dataclass
class AppContext:
    """Racine de composition : construite une fois au démarrage, passée aux routes et scripts."""

    engine: Engine
    session_factory: SessionFactory
    options: OptionStore
    settings_store: SettingsStore
    catalog: CatalogStore
    run_logger: RunLogger
    syncer: StockSyncer
    scheduler: Scheduler
    maintenance: Optional[Ticker] = None

    def start(self) -> None:
        """Arme la synchro planifiée (si activée) et la purge quotidienne du journal."""
        self.scheduler.maybe_schedule()

        if self.maintenance is None:
            self.maintenance = Ticker(
                "stock-sync-log-cleanup",
                self.run_logger.cleanup_old_logs,
                DAY,
                MAINTENANCE_FIRST_DELAY,
            )
            self.maintenance.start()

        logger.info("[BOOT] Stock sync context started")

    def stop(self) -> None:
        self.scheduler.shutdown()
        if self.maintenance is not None:
            self.maintenance.cancel()
            self.maintenance = None

    def test_connection(self):
        return self.syncer.test_connection(self.settings_store.load())


def build_context(
    bind: Optional[Engine] = None,
    feed_client: Optional[FeedClient] = None,
    create_tables: bool = True,
    ticker_factory: Callable[..., Ticker] = Ticker,
) -> AppContext:
    bind = bind or default_engine
    if create_tables:
        init_db(bind)

    session_factory = make_session_factory(bind)

    options = OptionStore(session_factory)
    settings_store = SettingsStore(options)
    catalog = CatalogStore(session_factory)
    run_logger = RunLogger(session_factory)
    syncer = StockSyncer(run_logger, catalog, feed_client or FeedClient())
    scheduler = Scheduler(syncer, run_logger, catalog, options, settings_store, ticker_factory=ticker_factory)

    return AppContext(
        engine=bind,
        session_factory=session_factory,
        options=options,
        settings_store=settings_store,
        catalog=catalog,
        run_logger=run_logger,
        syncer=syncer,
        scheduler=scheduler,
    )
