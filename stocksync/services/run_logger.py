# stocksync/services/run_logger.py

import json
import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from stocksync.db.session import SessionFactory
from stocksync.models import SyncLog, SyncRun, SyncRunSummary, now_utc
from stocksync.models.sync_log import LEVEL_ERROR, LEVEL_INFO, LEVEL_SUCCESS, LEVEL_WARNING

logger = logging.getLogger("stocksync.sync")

DEFAULT_RETENTION_DAYS = int(os.getenv("STOCKSYNC_LOG_RETENTION_DAYS", "30"))

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_IN_PROGRESS = "in-progress"
STATUS_ORPHAN = "orphan"

_PY_LEVELS = {
    LEVEL_INFO: logging.INFO,
    LEVEL_SUCCESS: logging.INFO,
    LEVEL_WARNING: logging.WARNING,
    LEVEL_ERROR: logging.ERROR,
}


def generate_run_id() -> str:
    """Préfixe horodaté + suffixe aléatoire : unique même pour deux runs dans la même seconde."""
    return "%s-%s" % (
        datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S"),
        uuid.uuid4().hex[:8],
    )


def derive_status(run_id: str, has_failed: bool, has_completed: bool) -> str:
    """
    Statut d'un run déduit de ses entrées (historique sans ligne sync_run).
    L'ordre des tests est important : un échec l'emporte sur un succès.
    """
    if has_failed:
        return STATUS_FAILED
    if has_completed:
        return STATUS_SUCCESS
    if run_id == "":
        return STATUS_ORPHAN
    return STATUS_IN_PROGRESS


class RunLogger:
    """
    Journal structuré des synchros, regroupé par run_id.

    L'écriture est « best effort » : si la base est indisponible, l'entrée est
    perdue (un avertissement part dans le logging Python) et la synchro continue.
    """

    def __init__(self, session_factory: SessionFactory, retention_days: Optional[int] = None) -> None:
        self._session_factory = session_factory
        self.retention_days = retention_days or DEFAULT_RETENTION_DAYS
        self.current_run_id = ""

    # ---------------------------------------------------------
    #  Cycle de vie d'un run
    # ---------------------------------------------------------

    def start_run(self, trigger: str = "manual") -> str:
        self.current_run_id = generate_run_id()

        try:
            with self._session_factory() as session:
                session.add(SyncRun(run_id=self.current_run_id, trigger=trigger))
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Could not record run {self.current_run_id}: {e}")

        self.info(f"Starting {trigger} sync", {"trigger": trigger})
        return self.current_run_id

    def end_run(self, status: str = STATUS_SUCCESS, stats: Optional[Dict[str, Any]] = None) -> None:
        stats = stats or {}
        if status == STATUS_SUCCESS:
            self.success("Sync completed successfully", stats)
        else:
            status = STATUS_FAILED
            self.error("Sync failed", stats)

        if self.current_run_id:
            try:
                with self._session_factory() as session:
                    run = session.get(SyncRun, self.current_run_id)
                    if run is not None:
                        run.status = status
                        run.finished_at = now_utc()
                        run.stats = stats
                        session.add(run)
                        session.commit()
            except SQLAlchemyError as e:
                logger.warning(f"[SYNC] Could not close run {self.current_run_id}: {e}")

        self.current_run_id = ""

    def set_run_id(self, run_id: str) -> None:
        self.current_run_id = run_id

    def get_run_id(self) -> str:
        return self.current_run_id

    # ---------------------------------------------------------
    #  Écriture
    # ---------------------------------------------------------

    def info(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._log(LEVEL_INFO, message, context)

    def success(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._log(LEVEL_SUCCESS, message, context)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._log(LEVEL_WARNING, message, context)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._log(LEVEL_ERROR, message, context)

    def _log(self, level: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        run_id = self.current_run_id

        line = f"[{run_id or 'no-run'}] [{level.upper()}] {message}"
        if context:
            line += " | Context: " + json.dumps(context, default=str)
        logger.log(_PY_LEVELS.get(level, logging.INFO), line)

        try:
            with self._session_factory() as session:
                session.add(SyncLog(
                    run_id=run_id,
                    level=level,
                    message=message,
                    context=context or None,
                ))
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Log entry dropped ({level}): {e}")

    # ---------------------------------------------------------
    #  Lecture
    # ---------------------------------------------------------

    def get_logs_for_run(self, run_id: str) -> List[SyncLog]:
        try:
            with self._session_factory() as session:
                stmt = (
                    select(SyncLog)
                    .where(SyncLog.run_id == run_id)
                    .order_by(SyncLog.timestamp.asc(), SyncLog.id.asc())
                )
                return list(session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Could not read logs for run {run_id}: {e}")
            return []

    def get_sync_runs(self, limit: int = 10, offset: int = 0) -> List[SyncRunSummary]:
        """Historique des runs, du plus récent au plus ancien."""
        is_failed = and_(SyncLog.level == LEVEL_ERROR, SyncLog.message.like("%failed%"))
        is_completed = and_(SyncLog.level == LEVEL_SUCCESS, SyncLog.message.like("%completed%"))
        started_at = func.min(SyncLog.timestamp).label("started_at")

        stmt = (
            select(
                SyncLog.run_id,
                started_at,
                func.max(SyncLog.timestamp).label("ended_at"),
                func.count(SyncLog.id).label("log_count"),
                func.sum(case((SyncLog.level == LEVEL_ERROR, 1), else_=0)).label("error_count"),
                func.sum(case((SyncLog.level == LEVEL_WARNING, 1), else_=0)).label("warning_count"),
                func.sum(case((is_failed, 1), else_=0)).label("failed_marks"),
                func.sum(case((is_completed, 1), else_=0)).label("completed_marks"),
            )
            .group_by(SyncLog.run_id)
            .order_by(started_at.desc())
            .limit(limit)
            .offset(offset)
        )

        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
                run_ids = [r.run_id for r in rows]
                if not run_ids:
                    return []

                runs = {
                    run.run_id: run
                    for run in session.execute(
                        select(SyncRun).where(SyncRun.run_id.in_(run_ids))
                    ).scalars()
                }
                markers = session.execute(
                    select(SyncLog)
                    .where(
                        SyncLog.run_id.in_(run_ids),
                        or_(is_failed, is_completed, and_(
                            SyncLog.level == LEVEL_INFO, SyncLog.message.like("%Starting%")
                        )),
                    )
                    .order_by(SyncLog.timestamp.asc(), SyncLog.id.asc())
                ).scalars().all()
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Could not read sync runs: {e}")
            return []

        triggers: Dict[str, str] = {}
        terminal_stats: Dict[str, Dict[str, Any]] = {}
        for entry in markers:
            if entry.level == LEVEL_INFO:
                trigger = (entry.context or {}).get("trigger")
                if trigger and entry.run_id not in triggers:
                    triggers[entry.run_id] = trigger
            elif entry.level == LEVEL_SUCCESS and entry.context:
                terminal_stats[entry.run_id] = entry.context

        summaries: List[SyncRunSummary] = []
        for r in rows:
            run = runs.get(r.run_id)

            if run is not None and run.status in (STATUS_SUCCESS, STATUS_FAILED):
                status = run.status
            else:
                status = derive_status(r.run_id, bool(r.failed_marks), bool(r.completed_marks))

            final_stats = terminal_stats.get(r.run_id)
            if run is not None and run.stats:
                final_stats = run.stats

            trigger = run.trigger if run is not None else triggers.get(r.run_id, "unknown")

            summaries.append(SyncRunSummary(
                run_id=r.run_id,
                trigger=trigger,
                started_at=r.started_at,
                ended_at=r.ended_at,
                duration=int((r.ended_at - r.started_at).total_seconds()),
                log_count=r.log_count,
                error_count=r.error_count or 0,
                warning_count=r.warning_count or 0,
                final_stats=final_stats,
                status=status,
            ))

        return summaries

    def get_sync_runs_count(self) -> int:
        try:
            with self._session_factory() as session:
                return int(session.execute(
                    select(func.count(func.distinct(SyncLog.run_id)))
                ).scalar() or 0)
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Could not count sync runs: {e}")
            return 0

    def get_log_counts(self) -> Dict[str, int]:
        counts = {
            "runs": 0,
            LEVEL_SUCCESS: 0,
            LEVEL_WARNING: 0,
            LEVEL_ERROR: 0,
        }

        try:
            with self._session_factory() as session:
                counts["runs"] = int(session.execute(
                    select(func.count(func.distinct(SyncLog.run_id))).where(SyncLog.run_id != "")
                ).scalar() or 0)

                level_counts = session.execute(
                    select(SyncLog.level, func.count(SyncLog.id)).group_by(SyncLog.level)
                ).all()
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Could not count logs: {e}")
            return counts

        for level, count in level_counts:
            if level in counts:
                counts[level] = int(count)

        return counts

    # ---------------------------------------------------------
    #  Maintenance
    # ---------------------------------------------------------

    def clear_all_logs(self) -> bool:
        try:
            with self._session_factory() as session:
                session.execute(delete(SyncLog))
                session.execute(delete(SyncRun))
                session.commit()
            return True
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Could not clear logs: {e}")
            return False

    def cleanup_old_logs(self, retention_days: Optional[int] = None) -> int:
        """Supprime les entrées plus vieilles que la fenêtre de rétention. Retourne le nombre supprimé."""
        days = retention_days or self.retention_days
        cutoff = now_utc() - timedelta(days=days)

        try:
            with self._session_factory() as session:
                result = session.execute(delete(SyncLog).where(SyncLog.timestamp < cutoff))
                session.execute(delete(SyncRun).where(SyncRun.started_at < cutoff))
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"[SYNC] Log cleanup failed: {e}")
            return 0

        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"[SYNC] Log cleanup: {deleted} entries older than {days} days removed")
        return deleted
