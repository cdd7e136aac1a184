"""Todoist webhook receiver and delivery log endpoints."""

import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from taskmirror.core.config import get_settings
from taskmirror.core.database import get_db
from taskmirror.models.sync_state import WebhookEvent
from taskmirror.schemas.responses import WebhookAck, WebhookEventResponse
from taskmirror.services.webhook import WebhookDelivery, WebhookIngestor, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

DELIVERY_ID_HEADER = "X-Todoist-Delivery-ID"
SIGNATURE_HEADER = "X-Todoist-Hmac-SHA256"


@router.post("/todoist/webhook", response_model=WebhookAck)
async def receive_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Receive a Todoist webhook delivery.

    Processed, skipped, failed and duplicate deliveries all answer 200 so
    Todoist stops retrying. Only malformed requests and bad signatures are
    rejected.
    """
    settings = get_settings()
    raw_body = await request.body()

    delivery_id = request.headers.get(DELIVERY_ID_HEADER)
    if not delivery_id:
        raise HTTPException(status_code=400, detail=f"Missing {DELIVERY_ID_HEADER} header")

    if settings.todoist_webhook_secret:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not verify_signature(raw_body, signature, settings.todoist_webhook_secret):
            logger.warning(f"Rejected webhook delivery {delivery_id}: invalid signature")
            raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        body = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Body is not valid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Body must be a JSON object")

    ingestor = WebhookIngestor(settings.supported_webhook_versions, settings.tz)
    outcome = await ingestor.ingest(db, WebhookDelivery(delivery_id=delivery_id, body=body))
    return WebhookAck(status=outcome.value)


@router.get("/api/webhooks/events", response_model=list[WebhookEventResponse])
async def list_webhook_events(
    status: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Most recent webhook deliveries, newest first."""
    query = select(WebhookEvent).order_by(desc(WebhookEvent.processed_at), desc(WebhookEvent.id)).limit(limit)
    if status:
        query = query.where(WebhookEvent.status == status)
    result = await db.execute(query)
    return result.scalars().all()
