"""
Synthetic Shopify Data Generator

Generates Shopify Admin REST shaped products, customers and orders for demos
and local development. The output goes through the same mapper and
repository as real Shopify data.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from faker import Faker


# =============================================================================
# CONFIGURATION
# =============================================================================

PRODUCT_TYPES = {
    "Electronics": ["Headphones", "Charger", "Speaker", "Webcam", "Keyboard"],
    "Apparel": ["T-Shirt", "Hoodie", "Cap", "Sneakers", "Jacket"],
    "Home": ["Mug", "Candle", "Throw Blanket", "Planter", "Lamp"],
    "Beauty": ["Face Serum", "Lip Balm", "Shampoo", "Hand Cream", "Perfume"],
}

# (cancelled, fulfillment_status, financial_status) with weights
ORDER_STATES = [
    ((False, None, "pending"), 0.10),
    ((False, None, "paid"), 0.25),
    ((False, "partial", "paid"), 0.05),
    ((False, "fulfilled", "paid"), 0.55),
    ((True, None, "refunded"), 0.05),
]


def _iso(value: datetime) -> str:
    return value.replace(tzinfo=timezone.utc).isoformat()


class ShopifyDataGenerator:
    """
    Seeded generator of Shopify-shaped records.

    Example:
        gen = ShopifyDataGenerator(seed=7)
        products = gen.products(20)
        customers = gen.customers(50)
        orders = gen.orders(200, products, customers)
    """

    def __init__(self, seed: Optional[int] = 42, now: Optional[datetime] = None):
        self.fake = Faker()
        self.random = random.Random(seed)
        if seed is not None:
            self.fake.seed_instance(seed)
        self.now = now or datetime.now(timezone.utc).replace(tzinfo=None)
        self._next_id = 1_000_000

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def products(self, n: int = 20) -> List[Dict[str, Any]]:
        records = []
        for _ in range(n):
            product_type = self.random.choice(list(PRODUCT_TYPES))
            title = f"{self.fake.color_name()} {self.random.choice(PRODUCT_TYPES[product_type])}"
            price = round(self.random.uniform(5, 250), 2)
            records.append({
                "id": self._id(),
                "title": title,
                "vendor": self.fake.company(),
                "product_type": product_type,
                "status": "active" if self.random.random() > 0.1 else "draft",
                "created_at": _iso(self.now - timedelta(days=self.random.randint(30, 365))),
                "variants": [
                    {
                        "id": self._id(),
                        "price": f"{price:.2f}",
                        "inventory_quantity": self.random.randint(0, 150),
                    }
                    for _ in range(self.random.randint(1, 3))
                ],
                "images": [{"src": f"https://cdn.example.com/products/{self.fake.uuid4()}.jpg"}],
            })
        return records

    def customers(self, n: int = 50) -> List[Dict[str, Any]]:
        records = []
        for _ in range(n):
            first, last = self.fake.first_name(), self.fake.last_name()
            records.append({
                "id": self._id(),
                "first_name": first,
                "last_name": last,
                "email": f"{first}.{last}.{self.random.randint(1, 999)}@example.com".lower(),
                "phone": self.fake.phone_number(),
                "orders_count": 0,
                "total_spent": "0.00",
                "state": "enabled",
                "created_at": _iso(self.now - timedelta(days=self.random.randint(1, 400))),
            })
        return records

    def orders(
        self,
        n: int,
        products: List[Dict[str, Any]],
        customers: List[Dict[str, Any]],
        days: int = 90,
    ) -> List[Dict[str, Any]]:
        states, weights = zip(*ORDER_STATES)
        records = []
        for _ in range(n):
            customer = self.random.choice(customers)
            cancelled, fulfillment, financial = self.random.choices(states, weights=weights)[0]
            created = self.now - timedelta(
                days=self.random.randint(0, days),
                minutes=self.random.randint(0, 1439),
            )
            line_items = []
            for product in self.random.sample(products, k=min(len(products), self.random.randint(1, 3))):
                line_items.append({
                    "product_id": product["id"],
                    "title": product["title"],
                    "quantity": self.random.randint(1, 4),
                    "price": product["variants"][0]["price"],
                })
            total = sum(float(i["price"]) * i["quantity"] for i in line_items)
            records.append({
                "id": self._id(),
                "email": customer["email"],
                "customer": {
                    "id": customer["id"],
                    "first_name": customer["first_name"],
                    "last_name": customer["last_name"],
                    "email": customer["email"],
                },
                "line_items": line_items,
                "total_price": f"{total:.2f}",
                "financial_status": financial,
                "fulfillment_status": fulfillment,
                "cancelled_at": _iso(created + timedelta(hours=2)) if cancelled else None,
                "created_at": _iso(created),
                "shipping_address": {
                    "address1": self.fake.street_address(),
                    "city": self.fake.city(),
                    "province": self.fake.state(),
                    "zip": self.fake.postcode(),
                    "country": "United States",
                },
            })
        return records
