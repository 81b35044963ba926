import logging
from typing import Optional

from models.order import Order
from app.metrics import CHECKOUT_REJECTED
from app.services.cart_store import find_live_session
from app.services.errors import CheckoutError, EmptyCartError, SessionExpiredError
from app.services.identity import resolve_order_identity
from app.services.order_conversion import convert_cart_to_order, load_cart_lines

logger = logging.getLogger(__name__)


def place_order(
    session_token: str,
    caller=None,
    notes: Optional[str] = None,
    *,
    guest: bool = False,
    whatsapp_phone: Optional[str] = None,
    now=None,
) -> Order:
    """Convert the cart behind ``session_token`` into an order.

    Must run inside ``transactional()``: session lookup, identity resolution
    and conversion share one unit of work. Does NOT commit.
    """
    channel = "guest" if guest else "customer"
    try:
        cart_session = find_live_session(session_token, now, for_update=True)
        if cart_session is None:
            raise SessionExpiredError()
        if not load_cart_lines(cart_session):
            raise EmptyCartError()

        user = resolve_order_identity(
            cart_session,
            caller,
            guest=guest,
            whatsapp_phone=whatsapp_phone,
        )
        order = convert_cart_to_order(cart_session, user, notes)
    except CheckoutError as e:
        CHECKOUT_REJECTED.labels(channel, type(e).__name__).inc()
        logger.info({
            "event": "checkout_rejected",
            "channel": channel,
            "reason": type(e).__name__,
            "session_id": session_token,
        })
        raise
    return order
