"""
Event Tracker

Append-only sink for behavioral and system events. It is fed by the webhook
dispatcher, the sync pipeline and the dashboard API.

Tracking is best effort: a payload that does not validate, or a write that
fails, is logged and reported as ``False``. The caller's transaction is never
poisoned because every write happens inside a savepoint.
"""

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import structlog
from prometheus_client import Counter
from sqlalchemy.exc import SQLAlchemyError

from storelens.database.models import CustomEvent, EventKind
from storelens.events.payloads import parse_event_payload
from storelens.exceptions import StoreLensError
from storelens.repository import EntityKind, ListFilter, TenantRepository

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

EVENTS_TRACKED = Counter(
    "storelens_events_tracked_total",
    "Custom events written (or dropped)",
    ["event_type", "status"],
)


class EventTracker:
    """
    Writes custom events for one tenant.

    Example:
        tracker = EventTracker(repo)
        await tracker.product_viewed(session_id, product_id="p-1", product_name="Mug")
    """

    def __init__(self, repository: TenantRepository):
        self._repository = repository

    @property
    def tenant_id(self):
        return self._repository.tenant_id

    async def track(
        self,
        kind: Union[EventKind, str],
        session_id: str,
        user_id: Optional[str] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Validate and persist one event.

        Returns:
            True when the event was written, False when it was dropped
        """
        kind_label = kind.value if isinstance(kind, EventKind) else str(kind)
        try:
            parsed = parse_event_payload(kind, payload)
            async with self._repository.session.begin_nested():
                await self._repository.create(
                    EntityKind.CUSTOM_EVENTS,
                    {
                        "event_type": parsed.kind,
                        "session_id": session_id,
                        "user_id": user_id,
                        "data": parsed.model_dump(mode="json", exclude={"kind"}),
                    },
                )
        except (StoreLensError, SQLAlchemyError) as e:
            EVENTS_TRACKED.labels(event_type=kind_label, status="dropped").inc()
            logger.warning(
                "Failed to track event",
                event_type=kind_label,
                tenant_id=str(self.tenant_id),
                error=str(e),
            )
            return False

        EVENTS_TRACKED.labels(event_type=kind_label, status="written").inc()
        logger.debug("Event tracked", event_type=kind_label, tenant_id=str(self.tenant_id))
        return True

    # -------------------------------------------------------------------------
    # Convenience emitters
    # -------------------------------------------------------------------------

    async def cart_abandoned(
        self,
        session_id: str,
        cart_items: Iterable[Dict[str, Any]] = (),
        cart_value: Decimal = Decimal("0"),
        user_id: Optional[str] = None,
        **extra: Any,
    ) -> bool:
        return await self.track(
            EventKind.CART_ABANDONED,
            session_id,
            user_id,
            {"cart_items": list(cart_items), "cart_value": cart_value, **extra},
        )

    async def checkout_started(
        self,
        session_id: str,
        cart_items: Iterable[Dict[str, Any]] = (),
        cart_value: Decimal = Decimal("0"),
        user_id: Optional[str] = None,
        **extra: Any,
    ) -> bool:
        return await self.track(
            EventKind.CHECKOUT_STARTED,
            session_id,
            user_id,
            {"cart_items": list(cart_items), "cart_value": cart_value, **extra},
        )

    async def product_viewed(
        self,
        session_id: str,
        product_id: str,
        user_id: Optional[str] = None,
        **extra: Any,
    ) -> bool:
        return await self.track(
            EventKind.PRODUCT_VIEWED,
            session_id,
            user_id,
            {"product_id": str(product_id), **extra},
        )

    async def user_registered(
        self,
        session_id: str,
        user_id: Optional[str] = None,
        **extra: Any,
    ) -> bool:
        return await self.track(EventKind.USER_REGISTERED, session_id, user_id, extra)

    async def data_sync_completed(
        self,
        session_id: str,
        products_count: int,
        customers_count: int,
        orders_count: int,
        failed_records: int = 0,
    ) -> bool:
        return await self.track(
            EventKind.DATA_SYNC_COMPLETED,
            session_id,
            None,
            {
                "products_count": products_count,
                "customers_count": customers_count,
                "orders_count": orders_count,
                "failed_records": failed_records,
            },
        )

    async def list_events(
        self,
        kind: Optional[Union[EventKind, str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[CustomEvent]:
        """Events newest first, optionally restricted to one kind"""
        flt = ListFilter(limit=limit, offset=offset)
        if kind is not None:
            flt.equals["event_type"] = EventKind(kind)
        return await self._repository.list(EntityKind.CUSTOM_EVENTS, flt)
