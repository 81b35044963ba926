"""
Availability checks and pricing over immutable catalog snapshots.

Snapshots are taken from the ORM rows once, inside the checkout transaction,
so the predicates below never trigger lazy loads and can be unit tested with
plain values.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

TWOPLACES = Decimal("0.01")


def to_money(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ProductSnapshot:
    id: int
    name: str
    base_price: Optional[Decimal]
    is_active: bool


@dataclass(frozen=True)
class VariantSnapshot:
    id: int
    name: str
    price: Decimal
    stock_quantity: Optional[int]
    is_active: bool


@dataclass(frozen=True)
class LineSnapshot:
    product: ProductSnapshot
    variant: Optional[VariantSnapshot]
    quantity: int

    @property
    def label(self) -> str:
        if self.variant is not None:
            return f"{self.product.name} - {self.variant.name}"
        return self.product.name


def snapshot_product(product) -> ProductSnapshot:
    return ProductSnapshot(
        id=product.id,
        name=product.name,
        base_price=product.base_price,
        is_active=bool(product.is_active),
    )


def snapshot_variant(variant) -> Optional[VariantSnapshot]:
    if variant is None:
        return None
    return VariantSnapshot(
        id=variant.id,
        name=variant.name,
        price=variant.price,
        stock_quantity=variant.stock_quantity,
        is_active=bool(variant.is_active),
    )


def snapshot_line(cart_item) -> LineSnapshot:
    return LineSnapshot(
        product=snapshot_product(cart_item.product),
        variant=snapshot_variant(cart_item.variant),
        quantity=cart_item.quantity,
    )


def has_stock_for(variant: VariantSnapshot, quantity: int) -> bool:
    # None means unlimited; 0 is out of stock, not unlimited
    if variant.stock_quantity is None:
        return True
    return variant.stock_quantity >= quantity


def is_variant_available(variant: VariantSnapshot, quantity: int) -> bool:
    return variant.is_active and has_stock_for(variant, quantity)


def is_line_available(line: LineSnapshot) -> bool:
    if line.variant is not None:
        return is_variant_available(line.variant, line.quantity)
    return line.product.is_active


def unavailable_items(lines: Iterable[LineSnapshot]) -> List[str]:
    """Return a label for every line that cannot be ordered, in cart order."""
    return [line.label for line in lines if not is_line_available(line)]


def effective_unit_price(line: LineSnapshot) -> Decimal:
    if line.variant is not None:
        return to_money(line.variant.price)
    return to_money(line.product.base_price)


def line_total(line: LineSnapshot) -> Decimal:
    return to_money(effective_unit_price(line) * line.quantity)


def cart_total(lines: Iterable[LineSnapshot]) -> Decimal:
    return sum((line_total(line) for line in lines), Decimal("0.00"))
