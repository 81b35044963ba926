import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from models import db
from models.cart import CartSession, CartItem
from models.catalog import Product, ProductVariant
from app.services.availability import (
    effective_unit_price,
    is_variant_available,
    line_total,
    snapshot_line,
    snapshot_variant,
    to_money,
)
from app.services.errors import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 30
DEFAULT_MAX_LINE_QUANTITY = 99


def _now(now=None):
    return now or datetime.utcnow()


def _max_line_quantity():
    return current_app.config.get("MAX_LINE_QUANTITY", DEFAULT_MAX_LINE_QUANTITY)


def find_live_session(token: Optional[str], now=None, *, for_update=False) -> Optional[CartSession]:
    """Return the session for ``token`` unless it is missing or expired.

    Expired rows are ignored here and pruned out of band.
    """
    if not token:
        return None
    query = CartSession.query.filter(
        CartSession.session_id == token,
        CartSession.expires_at > _now(now),
    )
    if for_update:
        query = query.with_for_update(of=CartSession)
    return query.first()


def find_live_session_for_user(user, now=None) -> Optional[CartSession]:
    if user is None:
        return None
    return (
        CartSession.query.filter(
            CartSession.user_id == user.id,
            CartSession.expires_at > _now(now),
        )
        .order_by(CartSession.created_at.desc(), CartSession.id.desc())
        .first()
    )


def resolve_session(token: Optional[str], user=None, now=None) -> Optional[CartSession]:
    return find_live_session(token, now) or find_live_session_for_user(user, now)


def get_or_create_session(token: Optional[str], user=None, now=None) -> CartSession:
    session = resolve_session(token, user, now)
    if session:
        return session
    ttl_days = current_app.config.get("CART_SESSION_TTL_DAYS", DEFAULT_TTL_DAYS)
    session = CartSession(
        session_id=uuid.uuid4().hex,
        user_id=user.id if user is not None else None,
        expires_at=_now(now) + timedelta(days=ttl_days),
    )
    db.session.add(session)
    db.session.flush()
    logger.info({"event": "cart_session_created", "cart_session_id": session.id})
    return session


def load_catalog_entry(product_id, variant_id=None):
    """Fetch and vet the product/variant pair a client wants to add."""
    product = db.session.get(Product, product_id) if product_id is not None else None
    if product is None:
        raise NotFoundError("Selected product does not exist")
    if not product.is_active:
        raise ForbiddenError("This product is not available")
    if variant_id is None:
        return product, None
    variant = db.session.get(ProductVariant, variant_id)
    if variant is None:
        raise NotFoundError("Selected variant does not exist")
    if variant.product_id != product.id:
        raise ValidationError("This variant does not belong to the selected product")
    if not variant.is_active:
        raise ForbiddenError("This variant is not available")
    return product, variant


def _find_line(cart_session: CartSession, product_id, variant_id) -> Optional[CartItem]:
    query = CartItem.query.filter_by(cart_session_id=cart_session.id, product_id=product_id)
    if variant_id is None:
        query = query.filter(CartItem.product_variant_id.is_(None))
    else:
        query = query.filter(CartItem.product_variant_id == variant_id)
    return query.first()


def _check_stock(variant, quantity):
    if variant is not None and not is_variant_available(snapshot_variant(variant), quantity):
        raise ValidationError("This variant is out of stock")


def add_line(cart_session: CartSession, product, variant, quantity: int) -> CartItem:
    """Add ``quantity`` of a product/variant, merging with an existing line."""
    max_qty = _max_line_quantity()
    variant_id = variant.id if variant is not None else None
    line = _find_line(cart_session, product.id, variant_id)
    new_quantity = quantity + (line.quantity if line else 0)
    if new_quantity > max_qty:
        raise ValidationError(f"Total quantity cannot exceed {max_qty}")
    _check_stock(variant, new_quantity)
    if line:
        line.quantity = new_quantity
    else:
        line = CartItem(
            cart_session_id=cart_session.id,
            product_id=product.id,
            product_variant_id=variant_id,
            quantity=quantity,
        )
        db.session.add(line)
        cart_session.items.append(line)
    db.session.flush()
    return line


def get_line(cart_session: CartSession, item_id) -> CartItem:
    line = db.session.get(CartItem, item_id)
    if line is None:
        raise NotFoundError("Cart item not found")
    if line.cart_session_id != cart_session.id:
        raise ForbiddenError("Unauthorized access to this cart item")
    return line


def update_line_quantity(cart_session: CartSession, item_id, quantity: int) -> CartItem:
    line = get_line(cart_session, item_id)
    _check_stock(line.variant, quantity)
    line.quantity = quantity
    return line


def remove_line(cart_session: CartSession, item_id) -> CartItem:
    line = get_line(cart_session, item_id)
    cart_session.items.remove(line)
    db.session.delete(line)
    return line


def clear_session(cart_session: CartSession) -> int:
    removed = CartItem.query.filter_by(cart_session_id=cart_session.id).delete(
        synchronize_session=False
    )
    db.session.expire(cart_session, ["items"])
    return removed


def prune_expired(now=None) -> int:
    """Delete expired sessions and their lines. Never called from request handlers."""
    expired_ids = [
        sid for (sid,) in db.session.query(CartSession.id).filter(CartSession.expires_at <= _now(now))
    ]
    if not expired_ids:
        return 0
    CartItem.query.filter(CartItem.cart_session_id.in_(expired_ids)).delete(synchronize_session=False)
    return CartSession.query.filter(CartSession.id.in_(expired_ids)).delete(synchronize_session=False)


def serialize_line(line: CartItem) -> dict:
    snap = snapshot_line(line)
    product = line.product
    variant = line.variant
    return {
        "id": line.id,
        "product": {
            "id": product.id,
            "name": product.name,
            "slug": product.slug,
        },
        "variant": {
            "id": variant.id,
            "name": variant.name,
            "sku": variant.sku,
            "price": float(to_money(variant.price)),
            "is_available": is_variant_available(snap.variant, line.quantity),
        } if variant is not None else None,
        "quantity": line.quantity,
        "unit_price": float(effective_unit_price(snap)),
        "total_price": float(line_total(snap)),
        "added_at": line.added_at,
    }


def summarize(cart_session: Optional[CartSession]) -> dict:
    """Best-effort view of the cart; no locks, staleness is expected."""
    if cart_session is None:
        return {
            "session_id": None,
            "items": [],
            "summary": {"total_items": 0, "total_price": 0.0, "items_count": 0},
        }
    lines = list(cart_session.items)
    snaps = [snapshot_line(line) for line in lines]
    return {
        "session_id": cart_session.session_id,
        "items": [serialize_line(line) for line in lines],
        "summary": {
            "total_items": sum(line.quantity for line in lines),
            "total_price": float(sum((line_total(s) for s in snaps), to_money(0))),
            "items_count": len(lines),
            "has_variants": any(line.product_variant_id is not None for line in lines),
            "session_expires_at": cart_session.expires_at,
        },
    }
