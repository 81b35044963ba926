from flask import Blueprint, request, current_app
from app.version import API_PREFIX
from app.utils import (
    ok,
    error,
    internal_error_response,
    auth_required,
    role_required,
    transactional,
    validate_schema,
)
from app.schemas.orders import OrderStatusUpdateRequest
from app.services.errors import CheckoutError
from app.services.order_admin import update_order_status
from app.routes.orders import serialize_order_detail
from models import db
from models.order import Order, OrderStatusLog, ORDER_STATUSES

admin_bp = Blueprint("admin", __name__, url_prefix=f"{API_PREFIX}/admin")


@admin_bp.before_request
@auth_required
@role_required("admin")
def _enforce_admin_role():
    """Ensure the requester is an authenticated admin."""
    return None


def _admin_order_view(order):
    data = serialize_order_detail(order)
    data["client_info"] = order.user.to_summary()
    data["confirmation_message_ref"] = order.confirmation_message_ref
    return data


@admin_bp.route("/orders", methods=["GET"])
def list_orders():
    status = request.args.get("status")
    if status and status not in ORDER_STATUSES:
        return error("Invalid status filter", status=422)
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get(
        "per_page", current_app.config.get("ADMIN_ORDERS_PER_PAGE", 20), type=int
    )
    query = Order.query
    if status:
        query = query.filter_by(status=status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    pagination = query.paginate(page=page, per_page=per_page, max_per_page=100, error_out=False)
    return ok({
        "orders": [_admin_order_view(o) for o in pagination.items],
        "pagination": {
            "page": pagination.page,
            "per_page": pagination.per_page,
            "total": pagination.total,
            "pages": pagination.pages,
        },
    })


@admin_bp.route("/orders/<int:order_id>", methods=["GET"])
def get_order(order_id):
    order = db.session.get(Order, order_id)
    if not order:
        return error("Order not found", status=404)
    data = _admin_order_view(order)
    logs = (
        OrderStatusLog.query.filter_by(order_id=order.id)
        .order_by(OrderStatusLog.timestamp, OrderStatusLog.id)
        .all()
    )
    data["status_history"] = [log.to_dict() for log in logs]
    return ok(data)


@admin_bp.route("/orders/<int:order_id>/status", methods=["PUT"])
@validate_schema(OrderStatusUpdateRequest)
def update_status(order_id):
    payload: OrderStatusUpdateRequest = request.validated_data
    order = db.session.get(Order, order_id)
    if not order:
        return error("Order not found", status=404)
    kwargs = {}
    if "notes" in payload.model_fields_set:
        kwargs["notes"] = payload.notes
    try:
        with transactional("Failed to update order status"):
            old_status = update_order_status(order, payload.status, request.user, **kwargs)
    except CheckoutError as e:
        return error(e.message, status=e.status, errors=e.errors)
    except Exception:
        return internal_error_response()
    return ok(
        {
            "order": _admin_order_view(order),
            "old_status": old_status,
            "status_changed": old_status != order.status,
        },
        message="Order status updated",
    )
