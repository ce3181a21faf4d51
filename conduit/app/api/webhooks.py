"""
Inbound webhook endpoint.

Hands the raw body and headers to the application's WebhookHandlerManager,
which detects the source, verifies its signature and dispatches to the
registered handler. Signature checks run over the exact bytes received, so
the body is never re-serialized before verification.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from conduit.app.dependencies import get_webhook_manager
from conduit.webhooks import WebhookFailure, WebhookHandlerManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "",
    summary="Receive a third-party webhook",
    responses={
        200: {"description": "Webhook verified and handled"},
        400: {"description": "Invalid payload, no handler, or handler failure"},
        401: {"description": "Signature verification failed"},
    },
)
async def receive_webhook(
    request: Request,
    manager: WebhookHandlerManager = Depends(get_webhook_manager),
) -> JSONResponse:
    """
    Verify and dispatch one webhook delivery.

    Failures are terminal: the sender decides whether to redeliver.
    """
    body = await request.body()
    result = await manager.process_webhook(body, dict(request.headers))

    if result.success:
        content: dict[str, Any] = {
            "status": "success",
            "source": result.source,
            "event": result.event,
        }
        if result.result is not None:
            content["result"] = jsonable_encoder(result.result)
        return JSONResponse(status_code=200, content=content)

    status_code = 401 if result.failure is WebhookFailure.INVALID_SIGNATURE else 400
    logger.info(
        f"[{result.source}] Webhook rejected ({status_code}): {result.error}"
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "failed",
            "source": result.source,
            "event": result.event,
            "error": result.error,
        },
    )
