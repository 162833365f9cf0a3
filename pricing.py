"""
Order pricing.

Every surface that shows or charges a total (cart view, checkout, order
placement) goes through ``compute_totals``. Arithmetic is done in Decimal and
rounded half-up to the cent; floats only appear at the storage/JSON edge.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0")

FREE_DELIVERY_THRESHOLD = Decimal("50")
DELIVERY_FEE = Decimal("3.99")
TAX_RATE = Decimal("0.085")


def to_money(value) -> Optional[Decimal]:
    """Convert a stored price to Decimal without carrying float binary noise."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def effective_price(price, sale_price=None) -> Decimal:
    """Sale price when present and lower than the list price, else the list price."""
    price = to_money(price)
    sale_price = to_money(sale_price)
    if sale_price is not None and sale_price < price:
        return sale_price
    return price


@dataclass(frozen=True)
class PricedLine:
    price: Decimal
    quantity: int
    sale_price: Optional[Decimal] = None

    @classmethod
    def from_doc(cls, doc: Mapping) -> "PricedLine":
        return cls(
            price=to_money(doc["price"]),
            quantity=int(doc["quantity"]),
            sale_price=to_money(doc.get("sale_price")),
        )

    @property
    def unit_price(self) -> Decimal:
        return effective_price(self.price, self.sale_price)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def savings(self) -> Decimal:
        return (self.price - self.unit_price) * self.quantity


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    savings: Decimal
    total: Decimal
    item_count: int
    # coupon discounts are not applied; the persisted field stays at zero
    discount: Decimal = ZERO

    @classmethod
    def from_doc(cls, doc: Mapping) -> "Totals":
        """Rebuild exact totals from an order or cart document.

        Totals are stored as cent-rounded floats; summing those floats directly
        can drift, so readers should go through this instead.
        """
        return cls(
            subtotal=to_money(doc["subtotal"]),
            delivery_fee=to_money(doc["delivery_fee"]),
            tax=to_money(doc["tax"]),
            savings=to_money(doc.get("savings", 0)),
            total=to_money(doc["total"]),
            item_count=int(doc.get("item_count", 0)),
            discount=to_money(doc.get("discount", 0)),
        )

    @property
    def amount_to_free_delivery(self) -> Decimal:
        return max(ZERO, FREE_DELIVERY_THRESHOLD - self.subtotal)

    def as_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "delivery_fee": float(self.delivery_fee),
            "tax": float(self.tax),
            "discount": float(self.discount),
            "savings": float(self.savings),
            "total": float(self.total),
            "item_count": self.item_count,
            "amount_to_free_delivery": float(self.amount_to_free_delivery),
        }


def delivery_fee_for(subtotal: Decimal) -> Decimal:
    return ZERO if subtotal >= FREE_DELIVERY_THRESHOLD else DELIVERY_FEE


def tax_for(subtotal: Decimal) -> Decimal:
    return quantize(subtotal * TAX_RATE)


def compute_totals(lines: Iterable[PricedLine]) -> Totals:
    """Price a set of cart lines.

    Savings are reported for display only; they are already part of the
    subtotal through each line's effective price and are not subtracted again.
    An empty input still carries the delivery fee, so callers must refuse to
    check out an empty cart.
    """
    lines = list(lines)
    subtotal = quantize(sum((line.line_total for line in lines), ZERO))
    savings = quantize(sum((line.savings for line in lines), ZERO))
    fee = delivery_fee_for(subtotal)
    tax = tax_for(subtotal)
    return Totals(
        subtotal=subtotal,
        delivery_fee=fee,
        tax=tax,
        savings=savings,
        total=subtotal + fee + tax,
        item_count=sum(line.quantity for line in lines),
    )
