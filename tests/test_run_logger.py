import re
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from stocksync.models import SyncLog, SyncRun, now_utc
from stocksync.services.run_logger import RunLogger, derive_status, generate_run_id

pytestmark = pytest.mark.integration


def _add_entry(ctx, run_id, level, message, context=None, age_days=0):
    with ctx.session_factory() as session:
        session.add(SyncLog(
            run_id=run_id,
            level=level,
            message=message,
            context=context,
            timestamp=now_utc() - timedelta(days=age_days),
        ))
        session.commit()


def test_generate_run_id_format_and_uniqueness():
    ids = {generate_run_id() for _ in range(50)}
    assert len(ids) == 50
    for run_id in ids:
        assert re.match(r"^\d{8}-\d{6}-[0-9a-f]{8}$", run_id)


@pytest.mark.parametrize(
    "run_id, failed, completed, expected",
    [
        ("r1", True, False, "failed"),
        ("r1", False, True, "success"),
        ("r1", True, True, "failed"),
        ("r1", False, False, "in-progress"),
        ("", False, False, "orphan"),
    ],
)
def test_derive_status(run_id, failed, completed, expected):
    assert derive_status(run_id, failed, completed) == expected


def test_run_id_round_trip(ctx):
    logger = ctx.run_logger
    logger.info("before any run")

    run_id = logger.start_run("manual")
    assert logger.get_run_id() == run_id
    logger.info("step one")
    logger.warning("step two", {"sku": "A1"})
    logger.end_run("success", {"updated_count": 1})

    assert logger.get_run_id() == ""
    logger.info("after the run")

    entries = logger.get_logs_for_run(run_id)
    assert [e.message for e in entries] == [
        "Starting manual sync",
        "step one",
        "step two",
        "Sync completed successfully",
    ]
    assert all(e.run_id == run_id for e in entries)
    assert entries[0].context == {"trigger": "manual"}
    assert entries[-1].level == "success"
    assert entries[-1].context == {"updated_count": 1}
    assert [e.timestamp for e in entries] == sorted(e.timestamp for e in entries)

    orphans = [e.message for e in logger.get_logs_for_run("")]
    assert orphans == ["before any run", "after the run"]


def test_end_run_failed_records_error_entry(ctx):
    run_id = ctx.run_logger.start_run("scheduled")
    ctx.run_logger.end_run("failed", {"reason": "boom"})

    last = ctx.run_logger.get_logs_for_run(run_id)[-1]
    assert last.level == "error"
    assert last.message == "Sync failed"
    assert last.context == {"reason": "boom"}

    with ctx.session_factory() as session:
        run = session.get(SyncRun, run_id)
    assert run.status == "failed"
    assert run.finished_at is not None


def test_sync_runs_newest_first_with_explicit_status(ctx):
    logger = ctx.run_logger

    first = logger.start_run("scheduled")
    logger.warning("w")
    logger.end_run("success", {"updated_count": 2})

    second = logger.start_run("manual")
    logger.error("row failed")
    logger.end_run("failed", {"reason": "x"})

    third = logger.start_run("manual")

    runs = logger.get_sync_runs(10, 0)
    assert [r.run_id for r in runs] == [third, second, first]

    by_id = {r.run_id: r for r in runs}
    assert by_id[first].status == "success"
    assert by_id[first].trigger == "scheduled"
    assert by_id[first].warning_count == 1
    assert by_id[first].log_count == 3
    assert by_id[first].final_stats == {"updated_count": 2}

    assert by_id[second].status == "failed"
    assert by_id[second].error_count == 2
    assert by_id[second].final_stats == {"reason": "x"}

    assert by_id[third].status == "in-progress"

    assert [r.run_id for r in logger.get_sync_runs(1, 1)] == [second]
    assert logger.get_sync_runs_count() == 3


def test_status_derived_from_historical_entries(ctx):
    _add_entry(ctx, "old-ok", "info", "Starting scheduled sync", {"trigger": "scheduled"}, age_days=3)
    _add_entry(ctx, "old-ok", "success", "Sync completed successfully", {"updated_count": 4}, age_days=3)
    _add_entry(ctx, "old-ko", "info", "Starting manual sync", {"trigger": "manual"}, age_days=2)
    _add_entry(ctx, "old-ko", "error", "Sync failed", {"reason": "HTTP"}, age_days=2)
    _add_entry(ctx, "old-open", "info", "Starting manual sync", {"trigger": "manual"}, age_days=1)
    _add_entry(ctx, "", "info", "Sync scheduled: hourly", age_days=1)

    by_id = {r.run_id: r for r in ctx.run_logger.get_sync_runs(10, 0)}

    assert by_id["old-ok"].status == "success"
    assert by_id["old-ok"].trigger == "scheduled"
    assert by_id["old-ok"].final_stats == {"updated_count": 4}
    assert by_id["old-ko"].status == "failed"
    assert by_id["old-ko"].trigger == "manual"
    assert by_id["old-open"].status == "in-progress"
    assert by_id[""].status == "orphan"
    assert by_id[""].trigger == "unknown"


def test_historical_final_stats_come_from_completion_entry_only(ctx):
    _add_entry(ctx, "old-rows", "info", "Starting manual sync", {"trigger": "manual"}, age_days=2)
    _add_entry(ctx, "old-rows", "error", 'Failed to update stock for SKU "E1": disk full', {"sku": "E1"}, age_days=2)
    _add_entry(ctx, "old-rows", "success", "Sync completed successfully", {"updated_count": 1}, age_days=2)
    _add_entry(ctx, "old-crash", "info", "Starting manual sync", {"trigger": "manual"}, age_days=1)
    _add_entry(ctx, "old-crash", "error", "Sync failed", {"reason": "HTTP"}, age_days=1)

    by_id = {r.run_id: r for r in ctx.run_logger.get_sync_runs(10, 0)}

    assert by_id["old-rows"].final_stats == {"updated_count": 1}
    assert by_id["old-crash"].final_stats is None


def test_run_timestamps_are_utc_aware(ctx):
    run_id = ctx.run_logger.start_run("manual")
    ctx.run_logger.end_run("success", {})

    (run,) = ctx.run_logger.get_sync_runs(10, 0)
    assert run.run_id == run_id
    assert run.started_at.tzinfo is not None
    assert run.duration >= 0
    with ctx.session_factory() as session:
        assert session.get(SyncRun, run_id).finished_at.tzinfo is not None


def test_log_counts(ctx):
    logger = ctx.run_logger
    logger.info("system line")
    logger.start_run("manual")
    logger.warning("w1")
    logger.warning("w2")
    logger.end_run("success", {})
    logger.start_run("manual")
    logger.end_run("failed", {})

    assert logger.get_log_counts() == {"runs": 2, "success": 1, "warning": 2, "error": 1}
    # les entrées système comptent comme un groupe de plus
    assert logger.get_sync_runs_count() == 3


def test_clear_all_logs(ctx):
    ctx.run_logger.start_run("manual")
    ctx.run_logger.end_run("success", {})

    assert ctx.run_logger.clear_all_logs() is True
    assert ctx.run_logger.get_sync_runs(10, 0) == []
    assert ctx.run_logger.get_log_counts()["runs"] == 0


def test_cleanup_old_logs_respects_retention(ctx):
    _add_entry(ctx, "ancient", "info", "Starting manual sync", age_days=45)
    _add_entry(ctx, "recent", "info", "Starting manual sync", age_days=5)

    deleted = ctx.run_logger.cleanup_old_logs()

    assert deleted == 1
    assert ctx.run_logger.get_logs_for_run("ancient") == []
    assert len(ctx.run_logger.get_logs_for_run("recent")) == 1

    assert ctx.run_logger.cleanup_old_logs(retention_days=1) == 1


def test_logging_is_best_effort_when_store_fails():
    def broken_factory():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    logger = RunLogger(broken_factory)

    run_id = logger.start_run("manual")
    logger.info("still fine")
    logger.end_run("success", {"updated_count": 0})

    assert run_id
    assert logger.get_run_id() == ""
    assert logger.get_logs_for_run(run_id) == []
    assert logger.get_sync_runs() == []
    assert logger.get_sync_runs_count() == 0
    assert logger.get_log_counts() == {"runs": 0, "success": 0, "warning": 0, "error": 0}
    assert logger.clear_all_logs() is False
    assert logger.cleanup_old_logs() == 0


def test_entries_mirrored_to_python_logging(ctx, caplog):
    with caplog.at_level("INFO", logger="stocksync.sync"):
        run_id = ctx.run_logger.start_run("manual")
        ctx.run_logger.warning("careful", {"sku": "A1"})

    messages = [r.getMessage() for r in caplog.records]
    assert f"[{run_id}] [INFO] Starting manual sync | Context: {{\"trigger\": \"manual\"}}" in messages
    assert f"[{run_id}] [WARNING] careful | Context: {{\"sku\": \"A1\"}}" in messages


def test_insert_failure_does_not_raise(ctx):
    failure = OperationalError("INSERT", {}, Exception("disk I/O error"))
    with patch.object(Session, "commit", side_effect=failure):
        ctx.run_logger.info("lost entry")

    assert ctx.run_logger.get_logs_for_run("") == []
