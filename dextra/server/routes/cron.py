"""Cron trigger route - runs due scheduled actions once per call."""

import asyncio
import hmac
import logging

from fastapi import APIRouter, HTTPException, Request

from ..app import require_app

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/cron/minute")
async def cron_minute(request: Request):
    app = require_app()
    secret = app.settings.cron_secret
    auth_header = request.headers.get("authorization", "")
    if not secret or not hmac.compare_digest(auth_header, f"Bearer {secret}"):
        raise HTTPException(401, "Unauthorized")

    timeout = app.settings.limits.cron_timeout
    try:
        result = await asyncio.wait_for(app.run_cron_tick(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"[Actions] Cron tick exceeded {timeout}s")
        raise HTTPException(504, "Cron tick timed out")
    logger.info(f"[Actions] Cron tick done: fetched={result.fetched} processed={result.processed}")
    return {"success": True}
