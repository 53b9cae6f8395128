"""HTTP trigger endpoints for the sync pipeline."""

import json
import logging

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from config import SYNC_WEBHOOK_SECRET, MirrorDatabases
from hevy_sync import sync_full
from pipeline import get_status, run_pipeline

logger = logging.getLogger(__name__)

app = FastAPI(title="Hevy Notion Sync")


def _authorized(request: Request) -> bool:
    """Open when no secret is configured; otherwise require the bearer secret."""
    if not SYNC_WEBHOOK_SECRET:
        return True
    return request.headers.get("Authorization") == f"Bearer {SYNC_WEBHOOK_SECRET}"


async def _json_body(request: Request) -> dict:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return body if isinstance(body, dict) else {}


@app.post("/sync")
async def sync(request: Request):
    if not _authorized(request):
        return PlainTextResponse("Unauthorized", status_code=401)

    databases = MirrorDatabases.from_request(await _json_body(request))
    try:
        result = await run_in_threadpool(
            run_pipeline, databases if databases.has_workouts() else None,
        )
    except Exception as e:
        logger.error("Sync request failed: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500)
    return result


@app.post("/full-sync")
async def full_sync(request: Request):
    if not _authorized(request):
        return PlainTextResponse("Unauthorized", status_code=401)
    try:
        processed = await run_in_threadpool(sync_full)
    except Exception as e:
        logger.error("Full sync request failed: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500)
    return {"success": True, "workouts": processed}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/status")
def status():
    try:
        return get_status()
    except Exception as e:
        logger.error("Status request failed: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500)
