import logging
from flask import Blueprint, request, current_app
from flask_limiter.util import get_remote_address
from extensions import limiter
from models.order import Order
from app.version import API_PREFIX
from app.metrics import ORDERS_CREATED
from app.schemas.checkout import CheckoutRequest
from app.services.checkout import place_order
from app.services.errors import CheckoutError, TransactionFailure
from app.services.order_message import (
    NEXT_STEPS,
    build_confirmation_message,
    format_order_number,
)
from app.tasks.notifications import send_order_confirmation_task
from app.utils import (
    ok,
    error,
    internal_error_response,
    auth_required,
    role_required,
    transactional,
    validate_schema,
)

orders_bp = Blueprint("orders", __name__, url_prefix=f"{API_PREFIX}/orders")

logger = logging.getLogger(__name__)


def serialize_order_summary(order, is_existing_user):
    return {
        "id": order.id,
        "order_number": format_order_number(order.id),
        "status": order.status,
        "total_amount": float(order.total_amount),
        "notes": order.notes,
        "client_info": order.user.to_summary(is_existing_user=is_existing_user),
        "items": [item.to_dict() for item in order.items],
        "summary": {
            "total_items": order.total_items,
            "items_count": len(order.items),
            "created_at": order.created_at,
        },
    }


def serialize_order_detail(order):
    return {
        "id": order.id,
        "order_number": format_order_number(order.id),
        "status": order.status,
        "total_amount": float(order.total_amount),
        "notes": order.notes,
        "items": [
            dict(item.to_dict(), id=item.id, product_id=item.product_id,
                 product_variant_id=item.product_variant_id)
            for item in order.items
        ],
        "summary": {
            "total_items": order.total_items,
            "items_count": len(order.items),
            "has_variants": any(i.product_variant_id is not None for i in order.items),
        },
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def _confirmation_message(order):
    cfg = current_app.config
    return build_confirmation_message(
        order,
        shop_name=cfg.get("SHOP_NAME", "BS SHOP"),
        currency=cfg.get("CURRENCY_SYMBOL", "€"),
    )


def _dispatch_confirmation(order, body):
    """Hand the summary to the WhatsApp channel once the order is committed."""
    if not current_app.config.get("WHATSAPP_CONFIRMATIONS_ENABLED"):
        return
    to = order.user.whatsapp_phone
    if not to:
        return
    try:
        if current_app.config.get("TESTING"):
            send_order_confirmation_task(order.id, to, body)
        else:
            send_order_confirmation_task.delay(order.id, to, body)
    except Exception as e:
        # the order is committed; a failed send only leaves confirmation_message_ref empty
        logger.error("Failed to dispatch confirmation for order %s: %s", order.id, e, exc_info=True)


def _checkout(caller, guest):
    payload: CheckoutRequest = request.validated_data
    channel = "guest" if guest else "customer"
    try:
        with transactional("Order conversion failed"):
            order = place_order(
                payload.session_id,
                caller,
                payload.notes,
                guest=guest,
                whatsapp_phone=payload.whatsapp_phone,
            )
    except TransactionFailure:
        return internal_error_response()
    except CheckoutError as e:
        return error(e.message, status=e.status, errors=e.errors)
    except Exception:
        return internal_error_response()

    ORDERS_CREATED.labels(channel).inc()
    data = {"order": serialize_order_summary(order, is_existing_user=caller is not None and not guest)}
    message = "Order created"
    if not guest:
        whatsapp_message = _confirmation_message(order)
        data["whatsapp_message"] = whatsapp_message
        data["next_steps"] = NEXT_STEPS
        message = "Order created! Get ready for the WhatsApp confirmation."
        _dispatch_confirmation(order, whatsapp_message)
    return ok(data, message=message, status=201)


# ------------------- Checkout (authenticated) -------------------
@orders_bp.route("", methods=["POST"])
@limiter.limit(
    lambda: current_app.config["ORDER_LIMIT_PER_IP"],
    key_func=get_remote_address,
    error_message="Too many orders from this IP",
)
@auth_required
@role_required(["client:place_order", "admin"])
@validate_schema(CheckoutRequest)
def create_order():
    return _checkout(request.user, guest=False)


# ------------------- Checkout (guest) -------------------
@orders_bp.route("/guest", methods=["POST"])
@limiter.limit(
    lambda: current_app.config["ORDER_LIMIT_PER_IP"],
    key_func=get_remote_address,
    error_message="Too many orders from this IP",
)
@validate_schema(CheckoutRequest)
def create_guest_order():
    return _checkout(None, guest=True)


# ------------------- Order History -------------------
@orders_bp.route("", methods=["GET"])
@auth_required
@role_required(["client:view_own_orders", "admin"])
def list_orders():
    user = request.user
    orders = (
        Order.query.filter_by(user_id=user.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return ok({
        "orders": [serialize_order_detail(o) for o in orders],
        "total": len(orders),
    })


@orders_bp.route("/<int:order_id>", methods=["GET"])
@auth_required
@role_required(["client:view_own_orders", "admin"])
def get_order(order_id):
    order = Order.query.filter_by(id=order_id, user_id=request.user.id).first()
    if not order:
        return error("Order not found", status=404)
    return ok(serialize_order_detail(order))
