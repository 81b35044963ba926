"""
ORDER CONVERSION ENGINE

Turns a live cart session into an Order inside the caller's transaction:

0. lock variant rows (id order) and re-check availability
1. compute the total from effective unit prices
2. create the Order (pending)
3. create one OrderItem per cart line with the same unit prices
4. decrement limited stock with a conditional UPDATE
5. delete the cart lines

Nothing here commits. The caller wraps the call in ``transactional()`` so a
failure at any step rolls back every earlier step.
"""
import logging
from typing import List, Optional

from sqlalchemy import update

from models import db
from models.cart import CartSession, CartItem
from models.catalog import ProductVariant
from models.order import Order, OrderItem
from app.services.availability import (
    LineSnapshot,
    cart_total,
    effective_unit_price,
    line_total,
    snapshot_line,
    unavailable_items,
)
from app.services.errors import EmptyCartError, StockConflictError, UnavailableItemsError

logger = logging.getLogger(__name__)


def load_cart_lines(cart_session: CartSession) -> List[CartItem]:
    return (
        CartItem.query.filter_by(cart_session_id=cart_session.id)
        .order_by(CartItem.id)
        .all()
    )


def lock_variants(lines: List[CartItem]) -> None:
    """Take row locks on every variant in the cart, lowest id first."""
    variant_ids = sorted({ci.product_variant_id for ci in lines if ci.product_variant_id is not None})
    if not variant_ids:
        return
    locked = (
        ProductVariant.query.filter(ProductVariant.id.in_(variant_ids))
        .order_by(ProductVariant.id)
        .with_for_update(of=ProductVariant)
        .populate_existing()
        .all()
    )
    logger.debug({"event": "variants_locked", "variant_ids": [v.id for v in locked]})


def check_availability(lines: List[CartItem]) -> List[LineSnapshot]:
    snapshots = [snapshot_line(ci) for ci in lines]
    unavailable = unavailable_items(snapshots)
    if unavailable:
        raise UnavailableItemsError(unavailable)
    return snapshots


def decrement_stock(variant_id: int, quantity: int) -> None:
    """Decrement-if-sufficient; a zero rowcount means another checkout won."""
    result = db.session.execute(
        update(ProductVariant)
        .where(
            ProductVariant.id == variant_id,
            ProductVariant.stock_quantity.isnot(None),
            ProductVariant.stock_quantity >= quantity,
        )
        .values(stock_quantity=ProductVariant.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StockConflictError(variant_id)


def convert_cart_to_order(cart_session: CartSession, user, notes: Optional[str] = None) -> Order:
    lines = load_cart_lines(cart_session)
    if not lines:
        raise EmptyCartError()

    lock_variants(lines)
    snapshots = check_availability(lines)

    total_amount = cart_total(snapshots)
    order = Order(
        user_id=user.id,
        total_amount=total_amount,
        status="pending",
        notes=notes,
        confirmation_message_ref=None,
    )
    db.session.add(order)
    db.session.flush()

    for ci, snap in zip(lines, snapshots):
        db.session.add(
            OrderItem(
                order_id=order.id,
                product_id=ci.product_id,
                product_variant_id=ci.product_variant_id,
                quantity=ci.quantity,
                unit_price=effective_unit_price(snap),
                total_price=line_total(snap),
            )
        )
        if snap.variant is not None and snap.variant.stock_quantity is not None:
            decrement_stock(snap.variant.id, ci.quantity)

    CartItem.query.filter_by(cart_session_id=cart_session.id).delete(synchronize_session=False)
    db.session.expire(cart_session, ["items"])
    db.session.flush()

    logger.info({
        "event": "order_created",
        "order_id": order.id,
        "user_id": user.id,
        "total_amount": str(total_amount),
        "lines": len(lines),
    })
    return order
