import logging
import uuid
from typing import Callable, Optional

from models import db
from models.cart import CartSession
from models.user import User

logger = logging.getLogger(__name__)

GUEST_EMAIL_DOMAIN = "guest.bs-shop.local"


def provision_guest_identity(cart_session: CartSession, whatsapp_phone: Optional[str] = None) -> User:
    """Create a placeholder client account to own a guest order.

    Does NOT commit; the row lives and dies with the checkout transaction.
    """
    guest = User(
        name=f"Client {cart_session.session_id[-6:]}",
        email=f"guest_{uuid.uuid4().hex}@{GUEST_EMAIL_DOMAIN}",
        whatsapp_phone=whatsapp_phone,
        role="client",
        is_active=True,
        is_guest=True,
    )
    db.session.add(guest)
    db.session.flush()
    logger.info({"event": "guest_identity_provisioned", "user_id": guest.id})
    return guest


def _link(cart_session: CartSession, user: User) -> None:
    cart_session.user_id = user.id
    cart_session.user = user


def resolve_order_identity(
    cart_session: CartSession,
    caller: Optional[User] = None,
    *,
    guest: bool = False,
    whatsapp_phone: Optional[str] = None,
    provision: Callable[..., User] = provision_guest_identity,
) -> User:
    """Pick the identity that owns the order about to be created.

    Precedence: authenticated caller, then the identity already linked to the
    cart session, then a freshly provisioned guest. ``guest=True`` always takes
    the last path. The cart session is re-linked whenever the winner differs
    from its current link.
    """
    if not guest and caller is not None:
        if cart_session.user_id != caller.id:
            logger.info({
                "event": "cart_session_relinked",
                "cart_session_id": cart_session.id,
                "previous_user_id": cart_session.user_id,
                "user_id": caller.id,
            })
            _link(cart_session, caller)
        return caller

    if not guest and cart_session.user_id is not None:
        return cart_session.user or db.session.get(User, cart_session.user_id)

    user = provision(cart_session, whatsapp_phone=whatsapp_phone)
    _link(cart_session, user)
    return user
