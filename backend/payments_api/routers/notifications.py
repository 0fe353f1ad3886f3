"""
Provider notification ingress.

The provider decides whether to redeliver from the body, not the status
code: every response is HTTP 200 with "[accepted]" or "[refused]".
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from shared.config.constants import IngressReply
from shared.config.logging import notification_logger as logger
from shared.infrastructure.db import get_db
from shared.security.auth import notification_authenticated
from payments_api.core.dependencies import get_order_mutex
from payments_api.services.payments.ingestion import NotificationIngestionService
from payments_api.services.payments.order_mutex import OrderMutex


router = APIRouter(tags=["notifications"])


@router.post("/adyen/notify", response_class=PlainTextResponse)
async def receive_notification(
    request: Request,
    authenticated: bool = Depends(notification_authenticated),
    db: Session = Depends(get_db),
    mutex: OrderMutex = Depends(get_order_mutex),
) -> PlainTextResponse:
    """
    Receive a notification as a form post or a JSON ``notificationItems`` batch.

    Storing, locking and applying are blocking, so they run in the threadpool.
    """
    if not authenticated:
        return PlainTextResponse(IngressReply.REFUSED)

    service = NotificationIngestionService(db, mutex)
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Notification body is not valid JSON")
            return PlainTextResponse(IngressReply.REFUSED)
        if not isinstance(payload, dict):
            return PlainTextResponse(IngressReply.REFUSED)
        if "notificationItems" in payload:
            outcome = await run_in_threadpool(service.receive_batch, payload)
        else:
            outcome = await run_in_threadpool(service.receive, payload)
    else:
        form = await request.form()
        outcome = await run_in_threadpool(service.receive, dict(form))

    return PlainTextResponse(outcome.reply)
