"""
Shopify Record Mapper

Translates Shopify Admin REST shapes into canonical records and canonical
partial updates back into Shopify request bodies. Pure functions; no I/O.

Unknown Shopify fields are dropped. A record that lacks its identifier or
carries an unparseable amount raises ``MalformedRecord``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, ValidationError

from storelens.database.models import OrderStatus, RecordStatus
from storelens.exceptions import MalformedRecord
from storelens.repository import EntityKind
from storelens.repository.schemas import (
    CustomerRecord,
    OrderRecord,
    ProductRecord,
)

logger = structlog.get_logger(__name__)

CanonicalRecord = Union[ProductRecord, CustomerRecord, OrderRecord]

UNCATEGORIZED = "Uncategorized"
_PROCESSING_FINANCIAL = {"paid", "partially_paid"}
_ADDRESS_PARTS = ("address1", "address2", "city", "province", "zip", "country")


@dataclass
class MappingFailure:
    """One external record that could not be mapped"""
    external_id: Optional[str]
    reason: str


@dataclass
class MappingBatch:
    """Result of mapping a page of external records"""
    records: List[CanonicalRecord] = field(default_factory=list)
    failures: List[MappingFailure] = field(default_factory=list)


# =============================================================================
# FIELD PARSERS
# =============================================================================

def _external_id(kind: EntityKind, record: Mapping[str, Any]) -> str:
    value = record.get("id")
    if value is None or str(value).strip() == "":
        raise MalformedRecord(kind.value, "missing id")
    return str(value)


def _decimal(
    kind: EntityKind,
    external_id: Optional[str],
    name: str,
    value: Any,
    default: Decimal = Decimal("0"),
) -> Decimal:
    if value is None or value == "":
        return default
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise MalformedRecord(kind.value, f"{name} is not a number: {value!r}", external_id)
    if not amount.is_finite():
        raise MalformedRecord(kind.value, f"{name} is not a number: {value!r}", external_id)
    return amount


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _timestamp(value: Any) -> Optional[datetime]:
    """Shopify ISO-8601 timestamp as naive UTC; None when absent or unreadable"""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable timestamp dropped", value=value)
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _person_name(record: Mapping[str, Any]) -> Optional[str]:
    parts = [str(record.get(k) or "").strip() for k in ("first_name", "last_name")]
    name = " ".join(p for p in parts if p)
    return name or (record.get("email") or None)


def flatten_address(address: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Shopify address object as one comma-separated line"""
    if not address:
        return None
    parts = [str(address.get(k)).strip() for k in _ADDRESS_PARTS if address.get(k)]
    return ", ".join(p for p in parts if p) or None


def order_status(record: Mapping[str, Any]) -> OrderStatus:
    """Canonical status from Shopify's cancellation, fulfillment and payment states"""
    if record.get("cancelled_at"):
        return OrderStatus.CANCELLED
    fulfillment = (record.get("fulfillment_status") or "").lower()
    financial = (record.get("financial_status") or "").lower()
    if fulfillment == "fulfilled":
        return OrderStatus.SHIPPED
    if fulfillment == "partial" or financial in _PROCESSING_FINANCIAL:
        return OrderStatus.PROCESSING
    return OrderStatus.PENDING


# =============================================================================
# SHOPIFY -> CANONICAL
# =============================================================================

def _map_product(record: Mapping[str, Any]) -> Dict[str, Any]:
    external_id = _external_id(EntityKind.PRODUCTS, record)
    variants = record.get("variants") or []
    images = record.get("images") or []
    image = record.get("image") or (images[0] if images else None)

    price = Decimal("0")
    if variants:
        price = _decimal(EntityKind.PRODUCTS, external_id, "price", variants[0].get("price"))
    stock = sum(max(_int(v.get("inventory_quantity")), 0) for v in variants)

    return {
        "external_id": external_id,
        "name": (record.get("title") or "").strip(),
        "category": (record.get("product_type") or "").strip() or UNCATEGORIZED,
        "price": price,
        "stock": stock,
        "image": image.get("src") if isinstance(image, Mapping) else None,
        "status": RecordStatus.ACTIVE if record.get("status", "active") == "active" else RecordStatus.INACTIVE,
        "created_at": _timestamp(record.get("created_at")),
    }


def _map_customer(record: Mapping[str, Any]) -> Dict[str, Any]:
    external_id = _external_id(EntityKind.CUSTOMERS, record)
    return {
        "external_id": external_id,
        "name": _person_name(record) or f"Customer {external_id}",
        "email": record.get("email") or None,
        "phone": record.get("phone") or None,
        "total_orders": max(_int(record.get("orders_count")), 0),
        "total_spent": _decimal(EntityKind.CUSTOMERS, external_id, "total_spent", record.get("total_spent")),
        "join_date": _timestamp(record.get("created_at")),
        "status": RecordStatus.INACTIVE if record.get("state") == "disabled" else RecordStatus.ACTIVE,
    }


def _map_line_item(external_id: str, item: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    quantity = _int(item.get("quantity"))
    if quantity < 1:
        # Lines removed by an order edit keep quantity 0
        return None
    product_id = item.get("product_id")
    return {
        "external_product_id": str(product_id) if product_id is not None else None,
        "product_name": item.get("title") or item.get("name") or "Unknown item",
        "quantity": quantity,
        "price": _decimal(EntityKind.ORDERS, external_id, "line item price", item.get("price")),
    }


def _map_order(record: Mapping[str, Any]) -> Dict[str, Any]:
    external_id = _external_id(EntityKind.ORDERS, record)
    customer = record.get("customer") or {}

    items = []
    for raw in record.get("line_items") or []:
        item = _map_line_item(external_id, raw)
        if item is not None:
            items.append(item)

    # Shopify's total_price includes shipping and tax; only its format is checked
    _decimal(EntityKind.ORDERS, external_id, "total_price", record.get("total_price"))

    customer_id = customer.get("id")
    return {
        "external_id": external_id,
        "customer_external_id": str(customer_id) if customer_id is not None else None,
        "customer_name": _person_name(customer) if customer else None,
        "customer_email": record.get("email") or customer.get("email") or None,
        "line_items": items,
        "status": order_status(record),
        "order_date": _timestamp(record.get("processed_at") or record.get("created_at")),
        "shipping_address": flatten_address(record.get("shipping_address")),
    }


def cart_summary(record: Mapping[str, Any]) -> Tuple[List[Dict[str, Any]], Decimal]:
    """
    Cart lines and value from a Shopify cart or checkout.

    Uses ``total_price`` when present, otherwise the sum of the lines.
    """
    lines: List[Dict[str, Any]] = []
    computed = Decimal("0")
    for item in record.get("line_items") or []:
        quantity = max(_int(item.get("quantity")), 0)
        price = _decimal(EntityKind.ORDERS, None, "cart line price", item.get("price"))
        computed += price * quantity
        lines.append({
            "product_id": str(item["product_id"]) if item.get("product_id") is not None else None,
            "product_name": item.get("title"),
            "quantity": quantity,
            "price": str(price),
        })
    total = _decimal(EntityKind.ORDERS, None, "cart total", record.get("total_price"), default=computed)
    return lines, total


_TO_CANONICAL = {
    EntityKind.PRODUCTS: (_map_product, ProductRecord),
    EntityKind.CUSTOMERS: (_map_customer, CustomerRecord),
    EntityKind.ORDERS: (_map_order, OrderRecord),
}


def to_canonical(kind: Union[EntityKind, str], record: Mapping[str, Any]) -> CanonicalRecord:
    """
    Map one Shopify record to its canonical schema.

    Raises:
        MalformedRecord: missing identifier, unparseable amount, or a value
            outside the canonical constraints
    """
    kind = EntityKind(kind)
    if kind not in _TO_CANONICAL:
        raise MalformedRecord(kind.value, "kind has no external representation")
    if not isinstance(record, Mapping):
        raise MalformedRecord(kind.value, f"expected an object, got {type(record).__name__}")

    mapper, schema = _TO_CANONICAL[kind]
    values = mapper(record)
    try:
        return schema.model_validate(values)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise MalformedRecord(kind.value, errors, values.get("external_id")) from e


def map_many(kind: Union[EntityKind, str], records: Iterable[Mapping[str, Any]]) -> MappingBatch:
    """Map a batch, collecting failures instead of aborting on the first one"""
    kind = EntityKind(kind)
    batch = MappingBatch()
    for record in records:
        try:
            batch.records.append(to_canonical(kind, record))
        except MalformedRecord as e:
            batch.failures.append(MappingFailure(external_id=e.external_id, reason=e.message))
            logger.warning(
                "Skipping malformed record",
                kind=kind.value,
                external_id=e.external_id,
                reason=e.message,
            )
    return batch


# =============================================================================
# CANONICAL -> SHOPIFY
# =============================================================================

def _as_dict(partial: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(partial, BaseModel):
        return partial.model_dump(exclude_unset=True)
    return dict(partial)


def _product_patch(values: Mapping[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {}
    if values.get("name") is not None:
        body["title"] = values["name"]
    if values.get("category") is not None:
        body["product_type"] = "" if values["category"] == UNCATEGORIZED else values["category"]
    if values.get("status") is not None:
        body["status"] = "active" if RecordStatus(values["status"]) == RecordStatus.ACTIVE else "draft"
    if values.get("image"):
        body["images"] = [{"src": values["image"]}]
    return {"product": body}


def _customer_patch(values: Mapping[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {}
    if values.get("name"):
        first, _, last = str(values["name"]).strip().partition(" ")
        body["first_name"] = first
        body["last_name"] = last
    for name in ("email", "phone"):
        if name in values:
            body[name] = values[name]
    if values.get("status") is not None:
        body["state"] = "disabled" if RecordStatus(values["status"]) == RecordStatus.INACTIVE else "enabled"
    return {"customer": body}


def _order_patch(values: Mapping[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {}
    if "customer_email" in values:
        body["email"] = values["customer_email"]
    if values.get("shipping_address"):
        body["shipping_address"] = {"address1": values["shipping_address"]}
    return {"order": body}


_TO_EXTERNAL = {
    EntityKind.PRODUCTS: _product_patch,
    EntityKind.CUSTOMERS: _customer_patch,
    EntityKind.ORDERS: _order_patch,
}


def to_external_patch(
    kind: Union[EntityKind, str],
    partial: Union[BaseModel, Mapping[str, Any]],
) -> Dict[str, Any]:
    """
    Shopify REST request body for a partial canonical update.

    Only fields present in ``partial`` are written. Price and stock live on
    Shopify variants and inventory levels and are not part of the body.
    """
    kind = EntityKind(kind)
    if kind not in _TO_EXTERNAL:
        raise MalformedRecord(kind.value, "kind has no external representation")
    return _TO_EXTERNAL[kind](_as_dict(partial))
