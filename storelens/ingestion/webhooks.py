"""
Webhook Dispatcher

Routes one Shopify webhook notification to the tenant's repository and
event stream.

Delivery is at-least-once; every mutation is an upsert keyed by the Shopify
id, so a replayed notification converges to the same stored state. Derived
events are written after the record mutation has been flushed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import UUID, uuid4

import structlog
from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession

from storelens.events.tracker import EventTracker
from storelens.exceptions import MalformedRecord, TenantNotFound
from storelens.ingestion.mapper import cart_summary, to_canonical
from storelens.repository import EntityKind, TenantRepository
from storelens.tenancy.resolver import TenantResolver

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

WEBHOOKS_RECEIVED = Counter(
    "storelens_webhooks_received_total",
    "Shopify webhook notifications by topic and outcome",
    ["topic", "outcome"],
)


class WebhookTopic(str, Enum):
    """Handled Shopify webhook topics"""
    ORDERS_CREATE = "orders/create"
    ORDERS_UPDATED = "orders/updated"
    CUSTOMERS_CREATE = "customers/create"
    CUSTOMERS_UPDATED = "customers/updated"
    PRODUCTS_CREATE = "products/create"
    PRODUCTS_UPDATED = "products/updated"
    CARTS_UPDATE = "carts/update"


class WebhookAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    EVENT_ONLY = "event_only"
    IGNORED = "ignored"


@dataclass
class WebhookNotification:
    """One inbound notification"""
    topic: str
    shop_domain: str
    data: Dict[str, Any] = field(default_factory=dict)
    webhook_id: Optional[str] = None


@dataclass
class WebhookResult:
    """What a notification changed"""
    topic: str
    tenant_id: UUID
    action: WebhookAction
    record_id: Optional[UUID] = None
    event_emitted: bool = False


def _session_id(notification: WebhookNotification) -> str:
    # Shopify tokens tie cart, checkout and order events to one shopper session
    data = notification.data
    token = data.get("checkout_token") or data.get("cart_token") or data.get("token")
    if token:
        return str(token)
    return f"webhook-{notification.webhook_id or uuid4().hex}"


class WebhookDispatcher:
    """
    Applies webhook notifications within the caller's session.

    The caller owns the transaction: commit after ``dispatch`` returns,
    roll back when it raises.
    """

    def __init__(self, session: AsyncSession):
        self._session = session
        self._handlers: Dict[str, Callable[..., Awaitable[WebhookResult]]] = {
            WebhookTopic.ORDERS_CREATE.value: self._handle_order,
            WebhookTopic.ORDERS_UPDATED.value: self._handle_order,
            WebhookTopic.CUSTOMERS_CREATE.value: self._handle_customer,
            WebhookTopic.CUSTOMERS_UPDATED.value: self._handle_customer,
            WebhookTopic.PRODUCTS_CREATE.value: self._handle_product,
            WebhookTopic.PRODUCTS_UPDATED.value: self._handle_product,
            WebhookTopic.CARTS_UPDATE.value: self._handle_cart,
        }

    async def dispatch(self, notification: WebhookNotification) -> WebhookResult:
        """
        Apply one notification.

        Raises:
            TenantNotFound: shop domain does not resolve to an active tenant
            MalformedRecord: payload could not be mapped
        """
        topic = (notification.topic or "").strip().lower()
        metric_topic = topic if topic in self._handlers else "other"
        log = logger.bind(topic=topic, shop_domain=notification.shop_domain)

        try:
            tenant_id = await TenantResolver(self._session).resolve_tenant(notification.shop_domain)
        except TenantNotFound:
            WEBHOOKS_RECEIVED.labels(topic=metric_topic, outcome="unknown_tenant").inc()
            log.warning("Webhook for unknown shop")
            raise

        handler = self._handlers.get(topic)
        if handler is None:
            WEBHOOKS_RECEIVED.labels(topic=metric_topic, outcome="ignored").inc()
            log.info("Unhandled webhook topic acknowledged", tenant_id=str(tenant_id))
            return WebhookResult(topic=topic, tenant_id=tenant_id, action=WebhookAction.IGNORED)

        repo = TenantRepository(self._session, tenant_id)
        try:
            result = await handler(topic, notification, repo)
        except MalformedRecord as e:
            WEBHOOKS_RECEIVED.labels(topic=metric_topic, outcome="malformed").inc()
            log.warning("Malformed webhook payload", tenant_id=str(tenant_id), error=e.message)
            raise

        WEBHOOKS_RECEIVED.labels(topic=metric_topic, outcome="processed").inc()
        log.info(
            "Webhook processed",
            tenant_id=str(tenant_id),
            action=result.action.value,
            record_id=str(result.record_id) if result.record_id else None,
            event_emitted=result.event_emitted,
        )
        return result

    # -------------------------------------------------------------------------
    # Topic handlers
    # -------------------------------------------------------------------------

    async def _handle_order(
        self, topic: str, notification: WebhookNotification, repo: TenantRepository
    ) -> WebhookResult:
        record = to_canonical(EntityKind.ORDERS, notification.data)
        upserted = await repo.upsert_by_external_id(EntityKind.ORDERS, record)
        order = upserted.record

        emitted = False
        if topic == WebhookTopic.ORDERS_CREATE.value:
            if upserted.created and record.customer_external_id:
                await repo.record_customer_purchase(record.customer_external_id, order.total)
            emitted = await EventTracker(repo).checkout_started(
                _session_id(notification),
                cart_items=order.line_items,
                cart_value=order.total,
                user_id=record.customer_external_id,
                order_id=record.external_id,
                checkout_step="completed",
            )

        return WebhookResult(
            topic=topic,
            tenant_id=repo.tenant_id,
            action=WebhookAction.CREATED if upserted.created else WebhookAction.UPDATED,
            record_id=order.id,
            event_emitted=emitted,
        )

    async def _handle_customer(
        self, topic: str, notification: WebhookNotification, repo: TenantRepository
    ) -> WebhookResult:
        record = to_canonical(EntityKind.CUSTOMERS, notification.data)
        upserted = await repo.upsert_by_external_id(EntityKind.CUSTOMERS, record)

        emitted = False
        if topic == WebhookTopic.CUSTOMERS_CREATE.value:
            emitted = await EventTracker(repo).user_registered(
                _session_id(notification),
                user_id=record.external_id,
                customer_id=record.external_id,
                registration_method="shopify",
            )

        return WebhookResult(
            topic=topic,
            tenant_id=repo.tenant_id,
            action=WebhookAction.CREATED if upserted.created else WebhookAction.UPDATED,
            record_id=upserted.record.id,
            event_emitted=emitted,
        )

    async def _handle_product(
        self, topic: str, notification: WebhookNotification, repo: TenantRepository
    ) -> WebhookResult:
        record = to_canonical(EntityKind.PRODUCTS, notification.data)
        upserted = await repo.upsert_by_external_id(EntityKind.PRODUCTS, record)
        return WebhookResult(
            topic=topic,
            tenant_id=repo.tenant_id,
            action=WebhookAction.CREATED if upserted.created else WebhookAction.UPDATED,
            record_id=upserted.record.id,
        )

    async def _handle_cart(
        self, topic: str, notification: WebhookNotification, repo: TenantRepository
    ) -> WebhookResult:
        data = notification.data
        checkout_url = data.get("abandoned_checkout_url")
        if not checkout_url:
            return WebhookResult(topic=topic, tenant_id=repo.tenant_id, action=WebhookAction.IGNORED)

        items, value = cart_summary(data)
        customer = data.get("customer") or {}
        emitted = await EventTracker(repo).cart_abandoned(
            _session_id(notification),
            cart_items=items,
            cart_value=value,
            user_id=str(customer["id"]) if customer.get("id") is not None else None,
            checkout_url=checkout_url,
        )
        return WebhookResult(
            topic=topic,
            tenant_id=repo.tenant_id,
            action=WebhookAction.EVENT_ONLY,
            event_emitted=emitted,
        )
