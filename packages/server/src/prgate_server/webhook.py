import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from prgate_core.services import Services
from prgate_server.dependencies import get_config, get_services
from prgate_server.events import InvalidEvent, handle_pull_request_event, normalize_pull_request_event
from prgate_server.signature import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"],
)

_STATUS_CODES = {"queued": 202, "in_progress": 200, "ignored": 200}


def _check_signature(body: bytes, signature: Optional[str], config: dict) -> None:
    secret = config.get("webhook_secret")
    if not secret:
        logger.error("GITHUB_WEBHOOK_SECRET is not set; webhook signatures cannot be verified")
        if not config.get("allow_unsigned_webhooks", False):
            raise HTTPException(status_code=503, detail="Webhook secret not configured")
        logger.warning("Accepting unsigned webhook delivery (allow_unsigned_webhooks is on)")
        return
    if not verify_signature(body, signature, secret):
        logger.warning("Invalid webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")


@router.post("/github")
async def github_webhook(
    request: Request,
    x_github_event: Optional[str] = Header(None),
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_delivery: Optional[str] = Header(None),
    services: Services = Depends(get_services),
    config: dict = Depends(get_config),
):
    """Receive a GitHub webhook delivery and admit a review for pull_request events."""
    body = await request.body()
    _check_signature(body, x_hub_signature_256, config)

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    logger.info("GitHub delivery %s: event=%s action=%s", x_github_delivery, x_github_event, payload.get("action"))

    if x_github_event != "pull_request":
        return {"status": "ignored", "reason": f"Event '{x_github_event}' ignored"}

    try:
        event = normalize_pull_request_event(payload)
    except InvalidEvent as e:
        raise HTTPException(status_code=400, detail=str(e))

    # Store access is blocking sqlite I/O.
    outcome = await run_in_threadpool(
        handle_pull_request_event, event, services.store, services.orchestrator
    )
    return JSONResponse(status_code=_STATUS_CODES[outcome.status], content=outcome.to_dict())
