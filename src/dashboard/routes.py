"""FastAPI router for pipeline snapshots, client history, movements and stat trends."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger("pulse.dashboard.routes")

REPO_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = REPO_DIR / "config" / "config.yaml"

router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])

_tracker: Any = None


def _cfg() -> dict[str, Any]:
    from src.common.config import load_config
    return load_config(CONFIG_PATH)


def _get_tracker():
    """The process-wide tracker, built from config on first use."""
    global _tracker
    if _tracker is None:
        from src.dashboard.service import PipelineTracker
        _tracker = PipelineTracker.from_config(_cfg())
    return _tracker


def reset_tracker() -> None:
    """Forget the cached tracker so the next request reloads config and data."""
    global _tracker
    _tracker = None


async def _json_body(request: Request) -> dict[str, Any]:
    if not request.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(400, "Malformed JSON body")
    if not isinstance(body, dict):
        raise HTTPException(400, "Expected a JSON object")
    return body


# ------------------------------------------------------------------
# Pipeline snapshots
# ------------------------------------------------------------------

@router.get("/history")
async def pipeline_history() -> JSONResponse:
    snapshots = _get_tracker().get_pipeline_history()
    return JSONResponse([s.to_dict() for s in snapshots])


@router.get("/history/latest")
async def latest_snapshot() -> JSONResponse:
    snapshot = _get_tracker().get_latest_snapshot()
    if snapshot is None:
        raise HTTPException(404, "No snapshots yet")
    return JSONResponse(snapshot.to_dict())


@router.post("/snapshots")
async def save_snapshot(request: Request) -> JSONResponse:
    body = await _json_body(request)
    note = str(body.get("note") or "")
    snapshot = _get_tracker().save_pipeline_snapshot(note)
    return JSONResponse(snapshot.to_dict(), status_code=201)


@router.get("/clients/{name:path}/history")
async def client_history(name: str) -> JSONResponse:
    history = _get_tracker().get_client_history(name)
    if not history:
        raise HTTPException(404, f"No history for client {name!r}")
    return JSONResponse(history)


@router.get("/movements")
async def stage_movements(limit: int = 10) -> JSONResponse:
    if limit < 1 or limit > 500:
        raise HTTPException(400, "limit must be between 1 and 500")
    movements = _get_tracker().get_stage_movements(limit)
    return JSONResponse([m.to_dict() for m in movements])


@router.get("/stages")
async def stages() -> JSONResponse:
    tracker = _get_tracker()
    return JSONResponse({
        "stages": list(tracker.get_pipeline_stages()),
        "counts": tracker.get_client_count_by_stage(),
    })


@router.get("/summary")
async def pipeline_summary() -> JSONResponse:
    tracker = _get_tracker()
    return JSONResponse({
        "value": tracker.get_pipeline_value(),
        "closed": tracker.get_closed_deals_stats(),
    })


@router.put("/data")
async def update_data(request: Request) -> JSONResponse:
    """Replace the live pipeline and/or stats that the next snapshot captures."""
    body = await _json_body(request)
    pipeline = body.get("pipeline")
    stats = body.get("stats")
    if pipeline is not None and not isinstance(pipeline, dict):
        raise HTTPException(400, "pipeline must be an object")
    if stats is not None and not isinstance(stats, list):
        raise HTTPException(400, "stats must be a list")
    if not _get_tracker().storage.update_dashboard(pipeline=pipeline, stats=stats):
        raise HTTPException(500, "Failed to save dashboard data")
    return JSONResponse({"ok": True})


# ------------------------------------------------------------------
# Stat snapshots
# ------------------------------------------------------------------

@router.post("/stats/snapshots")
async def save_stat_snapshot() -> JSONResponse:
    snapshot = _get_tracker().save_stat_snapshot()
    return JSONResponse(snapshot.to_dict(), status_code=201)


@router.get("/stats/trends")
async def stat_trends() -> JSONResponse:
    trends = _get_tracker().get_stat_trends()
    return JSONResponse({stat_id: t.to_dict() for stat_id, t in trends.items()})


# ------------------------------------------------------------------
# Export / import
# ------------------------------------------------------------------

@router.get("/export")
async def export_data() -> Response:
    return Response(_get_tracker().export_data(), media_type="application/json")


@router.post("/import")
async def import_data(request: Request) -> JSONResponse:
    raw = (await request.body()).decode("utf-8", errors="replace")
    if not _get_tracker().import_data(raw):
        raise HTTPException(400, "Import failed: malformed export")
    return JSONResponse({"ok": True})
