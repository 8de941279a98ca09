# stocksync/routes/sync.py

import logging
import math
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from stocksync.context import AppContext
from stocksync.models import SyncLogRead, SyncSettings, SyncSettingsUpdate
from stocksync.routes.deps import ContextDep

router = APIRouter(prefix="/sync", tags=["sync"])
log = logging.getLogger("uvicorn.error")


@router.get("/settings", response_model=SyncSettings, summary="Réglages de la synchro")
def get_settings(ctx: AppContext = ContextDep) -> SyncSettings:
    return ctx.settings_store.load()


@router.put("/settings", response_model=SyncSettings, summary="Mettre à jour les réglages")
def update_settings(payload: SyncSettingsUpdate, ctx: AppContext = ContextDep) -> SyncSettings:
    try:
        return ctx.scheduler.apply_settings(payload.model_dump(exclude_unset=True))
    except ValidationError as e:
        detail = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
        raise HTTPException(status_code=422, detail=detail)


@router.get("/status", summary="État de la planification et du dernier run")
def sync_status(ctx: AppContext = ContextDep) -> Dict[str, Any]:
    return ctx.scheduler.get_sync_stats()


@router.get("/schedules", summary="Fréquences disponibles")
def schedule_options(ctx: AppContext = ContextDep) -> Dict[str, str]:
    return ctx.scheduler.get_schedule_options()


@router.post("/run", summary="Lancer une synchro manuelle")
def run_sync(ctx: AppContext = ContextDep) -> Dict[str, Any]:
    return ctx.scheduler.run_sync("manual").to_dict()


@router.post("/test", summary="Tester l'URL et les colonnes du CSV")
def test_connection(ctx: AppContext = ContextDep) -> Dict[str, Any]:
    try:
        return ctx.test_connection().to_dict()
    except Exception as e:
        log.exception("❌ /sync/test failed")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/runs", summary="Historique des runs (pagination)")
def list_runs(
    ctx: AppContext = ContextDep,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, le=100),
) -> Dict[str, Any]:
    total = ctx.run_logger.get_sync_runs_count()
    runs = ctx.run_logger.get_sync_runs(per_page, (page - 1) * per_page)

    return {
        "runs": [r.model_dump() for r in runs],
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": math.ceil(total / per_page) if total else 0,
        "counts": ctx.run_logger.get_log_counts(),
    }


@router.get("/logs", response_model=List[SyncLogRead], summary="Entrées d'un run")
def run_logs(
    ctx: AppContext = ContextDep,
    run_id: str = Query("", description="Identifiant du run (vide = entrées système)"),
) -> List[SyncLogRead]:
    return ctx.run_logger.get_logs_for_run(run_id)


@router.delete("/logs", summary="Vider le journal")
def clear_logs(ctx: AppContext = ContextDep) -> Dict[str, Any]:
    if ctx.run_logger.clear_all_logs():
        return {"success": True, "message": "All logs cleared."}
    return {"success": False, "message": "Failed to clear logs."}
