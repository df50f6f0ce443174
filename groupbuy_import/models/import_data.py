from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

"""Parse result models for the order workbook importer.

``ImportData`` is the sole artifact produced by the parser and consumed by the
order upsert. All models are frozen; ``to_dict()`` gives a plain JSON-able form.

Invariants:
- every Order.items aligns with ImportData.product_types (length and name order)
- OrderItem.subtotal == quantity * unit_price
- quantities are integers, all numbers finite
"""

__all__ = [
    "ProductType",
    "OrderItem",
    "Order",
    "ImportData",
]


@dataclass(frozen=True)
class ProductType:
    name: str
    unit_price: float


@dataclass(frozen=True)
class OrderItem:
    product_name: str
    unit_price: float
    quantity: int  # negative allowed (returns)
    subtotal: float  # always quantity * unit_price

    @staticmethod
    def create(product_name: str, unit_price: float, quantity: int) -> OrderItem:
        return OrderItem(
            product_name=product_name,
            unit_price=unit_price,
            quantity=quantity,
            subtotal=quantity * unit_price,
        )


@dataclass(frozen=True)
class Order:
    """One member order. Raw orders map to sheet rows; aggregated ones to nicknames."""
    nickname: str
    total_amount: float
    items: list[OrderItem] = field(default_factory=list)


@dataclass(frozen=True)
class ImportData:
    period_name: str
    product_types: list[ProductType]
    orders: list[Order]

    @property
    def total_amount(self) -> float:
        return sum(o.total_amount for o in self.orders)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
