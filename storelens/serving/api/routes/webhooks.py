"""
Shopify Webhook Endpoint

Accepts two delivery shapes:

- Shopify-native: topic and shop in ``X-Shopify-Topic`` and
  ``X-Shopify-Shop-Domain``, the record itself as the body
- Envelope: ``{"topic": ..., "shop_domain": ..., "data": {...}}``

When a webhook secret is configured the ``X-Shopify-Hmac-Sha256`` header
must carry the base64 HMAC-SHA256 of the raw body.
"""

import base64
import hashlib
import hmac
import json
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.config import Settings, get_settings
from storelens.database import get_db_dependency
from storelens.exceptions import InvalidRecord, Unauthorized
from storelens.ingestion.webhooks import WebhookAction, WebhookDispatcher, WebhookNotification
from storelens.serving.api.dependencies import commit_and_invalidate

logger = structlog.get_logger(__name__)
router = APIRouter()

TOPIC_HEADER = "X-Shopify-Topic"
SHOP_HEADER = "X-Shopify-Shop-Domain"
HMAC_HEADER = "X-Shopify-Hmac-Sha256"
WEBHOOK_ID_HEADER = "X-Shopify-Webhook-Id"


class WebhookEnvelope(BaseModel):
    topic: str = Field(min_length=1)
    shop_domain: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class WebhookResponse(BaseModel):
    status: str = "ok"
    topic: str
    tenant_id: UUID
    action: WebhookAction
    record_id: Optional[UUID] = None
    event_emitted: bool


def calculate_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> None:
    """Raise Unauthorized unless ``signature`` matches the body"""
    if not signature:
        raise Unauthorized(f"Missing {HMAC_HEADER} header")
    if not hmac.compare_digest(signature, calculate_signature(body, secret)):
        raise Unauthorized("Webhook signature verification failed")


def parse_notification(request: Request, body: bytes) -> WebhookNotification:
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as e:
        raise InvalidRecord(f"Webhook body is not valid JSON: {e.msg}") from e
    if not isinstance(payload, dict):
        raise InvalidRecord("Webhook body must be a JSON object")

    topic = request.headers.get(TOPIC_HEADER)
    if topic:
        return WebhookNotification(
            topic=topic,
            shop_domain=request.headers.get(SHOP_HEADER, ""),
            data=payload,
            webhook_id=request.headers.get(WEBHOOK_ID_HEADER),
        )

    try:
        envelope = WebhookEnvelope.model_validate(payload)
    except ValidationError as e:
        raise InvalidRecord(
            "Webhook envelope requires topic and shop_domain",
            errors=e.errors(include_url=False, include_context=False),
        ) from e
    return WebhookNotification(
        topic=envelope.topic,
        shop_domain=envelope.shop_domain,
        data=envelope.data,
        webhook_id=request.headers.get(WEBHOOK_ID_HEADER),
    )


@router.post("/shopify", response_model=WebhookResponse)
async def receive_shopify_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db_dependency),
    settings: Settings = Depends(get_settings),
) -> WebhookResponse:
    """
    Apply one webhook notification.

    Unknown shops answer 404 and malformed payloads 422, so Shopify retries
    them; unhandled topics are acknowledged with 200.
    """
    body = await request.body()
    secret = settings.shopify.webhook_secret
    if secret is not None and secret.get_secret_value():
        verify_signature(body, request.headers.get(HMAC_HEADER), secret.get_secret_value())

    notification = parse_notification(request, body)
    result = await WebhookDispatcher(db).dispatch(notification)

    if result.action != WebhookAction.IGNORED:
        await commit_and_invalidate(db, result.tenant_id)

    return WebhookResponse(
        topic=result.topic,
        tenant_id=result.tenant_id,
        action=result.action,
        record_id=result.record_id,
        event_emitted=result.event_emitted,
    )
