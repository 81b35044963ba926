import logging

from models import db
from models.order import Order, OrderStatusLog, ORDER_STATUSES
from app.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_UNSET = object()


def update_order_status(order: Order, new_status: str, actor, notes=_UNSET) -> str:
    """Apply an administrative status change and return the previous status.

    Editing notes never recomputes ``total_amount``. Does NOT commit.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError("Invalid status", errors={"status": ["Invalid status"]})
    old_status = order.status
    order.status = new_status
    if notes is not _UNSET:
        order.notes = notes
    db.session.add(
        OrderStatusLog(
            order_id=order.id,
            old_status=old_status,
            status=new_status,
            updated_by=actor.id,
        )
    )
    logger.info({
        "event": "order_status_updated",
        "order_id": order.id,
        "old_status": old_status,
        "status": new_status,
        "updated_by": actor.id,
    })
    return old_status


def record_confirmation_ref(order_id, ref: str) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    order.confirmation_message_ref = ref
    return order
