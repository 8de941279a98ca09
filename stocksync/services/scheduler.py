# stocksync/services/scheduler.py

import logging
import threading
import time
import traceback
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import schedule
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from stocksync.models import CUSTOM_SCHEDULE, SyncSettings
from stocksync.services.catalog import CatalogStore
from stocksync.services.options import OptionStore, SettingsStore
from stocksync.services.run_logger import STATUS_FAILED, STATUS_SUCCESS, RunLogger
from stocksync.services.stock_syncer import StockSyncer, SyncResult

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY

RECURRENCES: Dict[str, int] = {
    "every_5_minutes": 5 * MINUTE,
    "every_15_minutes": 15 * MINUTE,
    "every_30_minutes": 30 * MINUTE,
    "hourly": HOUR,
    "twicedaily": 12 * HOUR,
    "daily": DAY,
    "weekly": WEEK,
}

SCHEDULE_OPTIONS: Dict[str, str] = {
    "every_5_minutes": "Every 5 Minutes",
    "every_15_minutes": "Every 15 Minutes",
    "every_30_minutes": "Every 30 Minutes",
    "hourly": "Hourly",
    "twicedaily": "Twice Daily",
    "daily": "Daily",
    "weekly": "Weekly",
    CUSTOM_SCHEDULE: "Custom Interval",
}

FIRST_RUN_DELAY = MINUTE
RUNNING_TTL = HOUR

OPTION_LAST_RUN = "last_run"
OPTION_RUNNING = "sync_running"


def next_due_after(due: datetime, period: timedelta, now: datetime) -> datetime:
    """Prochaine échéance calée sur la précédente (un run long ne décale pas les suivants)."""
    nxt = due + period
    while nxt <= now:
        nxt += period
    return nxt


class Ticker:
    """
    Minuterie périodique : un `schedule.Scheduler` dédié, piloté par un thread daemon.
    Une exception levée par le callback est journalisée et n'arrête pas la minuterie.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Any],
        interval: float,
        first_delay: float = FIRST_RUN_DELAY,
        poll_interval: float = 1.0,
    ) -> None:
        self.name = name
        self.callback = callback
        self.interval = interval
        self.first_delay = first_delay
        self.poll_interval = poll_interval
        self._scheduler = schedule.Scheduler()
        self._job: Optional[schedule.Job] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._job = self._scheduler.every(self.interval).seconds.do(self._fire)
        self._job.next_run = datetime.now() + timedelta(seconds=self.first_delay)

        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()
        self._scheduler.clear()
        self._job = None

    @property
    def active(self) -> bool:
        return self._job is not None and not self._stop.is_set()

    @property
    def next_fire(self) -> Optional[float]:
        """Prochain déclenchement (timestamp Unix), None si la minuterie est arrêtée."""
        job = self._job
        if job is None or job.next_run is None:
            return None
        return job.next_run.timestamp()

    def _fire(self) -> None:
        try:
            self.callback()
        except Exception:
            logger.exception(f"[CRON] Ticker {self.name} callback failed")

    def _loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            job = self._job
            if job is None:
                return

            due = job.next_run
            self._scheduler.run_pending()

            if due is not None and job.next_run != due and not self._stop.is_set():
                job.next_run = next_due_after(due, job.period, datetime.now())


class Scheduler:
    """
    Pilote la synchro : minuterie, déclenchement manuel, dernier run, verrou.

    run_sync() ne lève jamais : tout échec devient un SyncResult(success=False)
    accompagné d'une entrée dans le journal.
    """

    def __init__(
        self,
        syncer: StockSyncer,
        run_logger: RunLogger,
        catalog: CatalogStore,
        options: OptionStore,
        settings_store: SettingsStore,
        ticker_factory: Callable[..., Ticker] = Ticker,
    ) -> None:
        self.syncer = syncer
        self.logger = run_logger
        self.catalog = catalog
        self.options = options
        self.settings_store = settings_store
        self._ticker_factory = ticker_factory
        self._ticker: Optional[Ticker] = None
        self._run_lock = threading.Lock()
        self._claim_token: Optional[str] = None

    # ---------------------------------------------------------
    #  Planification
    # ---------------------------------------------------------

    def interval_for(self, recurrence: str, settings: Optional[SyncSettings] = None) -> int:
        if recurrence == CUSTOM_SCHEDULE:
            settings = settings or self.settings_store.load()
            return settings.custom_interval_minutes * MINUTE
        return RECURRENCES.get(recurrence, HOUR)

    def schedule(self, recurrence: str = "hourly") -> bool:
        self.unschedule()

        self._ticker = self._ticker_factory(
            "stock-sync",
            self.execute,
            self.interval_for(recurrence),
            FIRST_RUN_DELAY,
        )
        self._ticker.start()

        self.logger.info(f"Sync scheduled: {recurrence}")
        return True

    def unschedule(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
            self.logger.info("Sync unscheduled")

    def reschedule(self, enabled: bool, recurrence: str) -> None:
        if enabled:
            self.schedule(recurrence)
        else:
            self.unschedule()

    def maybe_schedule(self) -> None:
        """Au démarrage : arme la minuterie si la synchro est activée."""
        settings = self.settings_store.load()
        if not settings.enabled:
            return
        if self._ticker is None:
            self.schedule(settings.schedule)

    def shutdown(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def get_next_run(self) -> Optional[float]:
        return self._ticker.next_fire if self._ticker is not None else None

    def apply_settings(self, changes: Dict[str, Any]) -> SyncSettings:
        """
        Enregistre de nouveaux réglages (validés, intervalle borné) et
        replanifie si l'activation ou la fréquence a changé.
        """
        old = self.settings_store.load()

        data = old.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None})
        new = SyncSettings.model_validate(data)

        schedule_changed = (
            new.enabled != old.enabled
            or new.schedule != old.schedule
            or (
                new.schedule == CUSTOM_SCHEDULE
                and new.custom_interval_minutes != old.custom_interval_minutes
            )
        )

        self.settings_store.save(new)

        if schedule_changed:
            self.reschedule(new.enabled, new.schedule)

        return new

    # ---------------------------------------------------------
    #  Exécution
    # ---------------------------------------------------------

    def execute(self) -> SyncResult:
        """Handler de la minuterie (thread daemon, sans client attaché)."""
        return self.run_sync("scheduled")

    def run_sync(self, trigger: str = "manual") -> SyncResult:
        if not self._run_lock.acquire(blocking=False):
            return self._busy(trigger)

        try:
            if not self._claim_running_flag():
                return self._busy(trigger)
            try:
                return self._run_sync(trigger)
            finally:
                self._release_running_flag()
        finally:
            self._run_lock.release()

    def _busy(self, trigger: str) -> SyncResult:
        logger.warning(f"[CRON] {trigger} sync skipped: a sync is already running")
        return SyncResult(success=False, message="A sync is already running.")

    def _run_sync(self, trigger: str) -> SyncResult:
        start_time = time.monotonic()

        self.logger.start_run(trigger)

        try:
            if not self.catalog.is_available():
                message = "Catalog store is not available."
                self.logger.end_run(STATUS_FAILED, {"reason": message})
                return SyncResult(success=False, message=message)

            settings = self.settings_store.load()

            if not settings.csv_url:
                message = "CSV URL is not configured."
                self.logger.end_run(STATUS_FAILED, {"reason": message})
                return SyncResult(success=False, message=message)

            result = self.syncer.sync(settings)

            duration = round(time.monotonic() - start_time, 2)

            if result.success:
                stats = dict(result.stats or {})
                stats.update({
                    "trigger": trigger,
                    "duration_seconds": duration,
                })

                self.update_last_run(STATUS_SUCCESS, (result.stats or {}).get("updated_count", 0), stats)
                self.logger.end_run(STATUS_SUCCESS, stats)

                return SyncResult(success=True, message=result.message, stats=stats)

            self.update_last_run(STATUS_FAILED, 0)
            self.logger.end_run(STATUS_FAILED, {"reason": result.message})

            return SyncResult(success=False, message=result.message)

        except Exception as e:
            message = f"Sync failed with exception: {e}"
            logger.exception(f"[CRON] {message}")

            frames = traceback.extract_tb(e.__traceback__)
            origin = frames[-1] if frames else None

            self.logger.error(message, {
                "exception": str(e),
                "type": type(e).__name__,
                "file": origin.filename if origin else None,
                "line": origin.lineno if origin else None,
            })
            self.logger.end_run(STATUS_FAILED, {"reason": message})
            self.update_last_run(STATUS_FAILED, 0)

            return SyncResult(success=False, message=message)

    # ---------------------------------------------------------
    #  Dernier run
    # ---------------------------------------------------------

    def update_last_run(self, status: str, products_synced: int, stats: Optional[Dict[str, Any]] = None) -> None:
        last_run = {
            "time": int(time.time()),
            "status": status,
            "products_synced": products_synced,
            "stats": stats or {},
        }
        try:
            self.options.set(OPTION_LAST_RUN, last_run)
        except SQLAlchemyError as e:
            logger.warning(f"[CRON] Could not save last run: {e}")

    def get_last_run(self) -> Dict[str, Any]:
        return self.options.get(OPTION_LAST_RUN) or {}

    # ---------------------------------------------------------
    #  Verrou
    # ---------------------------------------------------------

    def is_running(self) -> bool:
        try:
            return self.options.get(OPTION_RUNNING) is not None
        except SQLAlchemyError as e:
            logger.warning(f"[CRON] Could not read running flag: {e}")
            return False

    def set_running(self, running: bool) -> None:
        if running:
            self.options.set(OPTION_RUNNING, uuid.uuid4().hex, ttl_seconds=RUNNING_TTL)
        else:
            self.options.delete(OPTION_RUNNING)

    def _claim_running_flag(self) -> bool:
        """
        Pose le drapeau avec un jeton propre à ce run. Le jeton est gardé pour
        ne retirer, en fin de run, que le drapeau que ce process a posé.
        """
        token = uuid.uuid4().hex
        try:
            claimed = self.options.add(OPTION_RUNNING, token, ttl_seconds=RUNNING_TTL)
        except OperationalError as e:
            # base injoignable : le run échouera plus loin, proprement
            logger.warning(f"[CRON] Could not set running flag: {e}")
            self._claim_token = None
            return True
        except SQLAlchemyError as e:
            logger.warning(f"[CRON] Could not set running flag: {e}")
            return False

        self._claim_token = token if claimed else None
        return claimed

    def _release_running_flag(self) -> None:
        token, self._claim_token = self._claim_token, None
        if token is None:
            return
        try:
            self.options.delete(OPTION_RUNNING, expected=token)
        except SQLAlchemyError as e:
            logger.warning(f"[CRON] Could not clear running flag: {e}")

    # ---------------------------------------------------------
    #  Tableau de bord
    # ---------------------------------------------------------

    @staticmethod
    def get_schedule_options() -> Dict[str, str]:
        return dict(SCHEDULE_OPTIONS)

    @staticmethod
    def get_schedule_display_name(schedule: str) -> str:
        return SCHEDULE_OPTIONS.get(schedule, schedule)

    def get_sync_stats(self) -> Dict[str, Any]:
        last_run = self.get_last_run()
        settings = self.settings_store.load()

        return {
            "enabled": settings.enabled,
            "schedule": settings.schedule,
            "schedule_label": self.get_schedule_display_name(settings.schedule),
            "last_run_time": last_run.get("time"),
            "last_run_status": last_run.get("status"),
            "last_run_count": last_run.get("products_synced", 0),
            "next_run_time": self.get_next_run(),
            "is_running": self.is_running(),
        }
