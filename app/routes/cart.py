from flask import Blueprint, request
from app.version import API_PREFIX
from app.schemas.cart import AddToCartRequest, UpdateCartItemRequest
from app.services import cart_store
from app.services.errors import CheckoutError
from app.utils import (
    ok,
    error,
    internal_error_response,
    optional_auth,
    transactional,
    validate_schema,
)

cart_bp = Blueprint("cart", __name__, url_prefix=f"{API_PREFIX}/cart")

SESSION_HEADER = "X-Session-ID"


def _session_token():
    return request.headers.get(SESSION_HEADER)


def _cart_summary(cart_session):
    summary = cart_store.summarize(cart_session)["summary"]
    return {
        "total_items": summary["total_items"],
        "total_price": summary["total_price"],
        "items_count": summary["items_count"],
    }


# ------------------- View Cart -------------------
@cart_bp.route("", methods=["GET"])
@optional_auth
def view_cart():
    cart_session = cart_store.resolve_session(_session_token(), request.user)
    data = cart_store.summarize(cart_session)
    message = "Cart retrieved" if cart_session else "Cart is empty"
    return ok(data, message=message)


# ------------------- Add to Cart -------------------
@cart_bp.route("", methods=["POST"])
@optional_auth
@validate_schema(AddToCartRequest)
def add_to_cart():
    payload: AddToCartRequest = request.validated_data
    try:
        with transactional("Failed to add to cart"):
            product, variant = cart_store.load_catalog_entry(payload.product_id, payload.variant_id)
            cart_session = cart_store.get_or_create_session(_session_token(), request.user)
            line = cart_store.add_line(cart_session, product, variant, payload.quantity)
        return ok(
            {
                "session_id": cart_session.session_id,
                "cart_item": cart_store.serialize_line(line),
                "cart_summary": _cart_summary(cart_session),
            },
            message="Product added to cart",
            status=201,
        )
    except CheckoutError as e:
        return error(e.message, status=e.status, errors=e.errors)
    except Exception:
        return internal_error_response()


# ------------------- Update Quantity -------------------
@cart_bp.route("/<int:item_id>", methods=["PUT"])
@optional_auth
@validate_schema(UpdateCartItemRequest)
def update_cart_item(item_id):
    payload: UpdateCartItemRequest = request.validated_data
    cart_session = cart_store.resolve_session(_session_token(), request.user)
    if not cart_session:
        return error("Unauthorized access to this cart item", status=403)
    try:
        with transactional("Failed to update cart quantity"):
            line = cart_store.update_line_quantity(cart_session, item_id, payload.quantity)
        return ok(
            {
                "cart_item": cart_store.serialize_line(line),
                "cart_summary": _cart_summary(cart_session),
            },
            message="Quantity updated",
        )
    except CheckoutError as e:
        return error(e.message, status=e.status, errors=e.errors)
    except Exception:
        return internal_error_response()


# ------------------- Remove Item -------------------
@cart_bp.route("/<int:item_id>", methods=["DELETE"])
@optional_auth
def remove_cart_item(item_id):
    cart_session = cart_store.resolve_session(_session_token(), request.user)
    if not cart_session:
        return error("Unauthorized access to this cart item", status=403)
    try:
        with transactional("Failed to remove cart item"):
            line = cart_store.remove_line(cart_session, item_id)
            removed = {
                "id": line.id,
                "product_name": line.product.name,
                "quantity": line.quantity,
            }
        return ok(
            {"removed_item": removed, "cart_summary": _cart_summary(cart_session)},
            message="Item removed from cart",
        )
    except CheckoutError as e:
        return error(e.message, status=e.status, errors=e.errors)
    except Exception:
        return internal_error_response()


# ------------------- Clear Cart -------------------
@cart_bp.route("", methods=["DELETE"])
@optional_auth
def clear_cart():
    cart_session = cart_store.resolve_session(_session_token(), request.user)
    if not cart_session:
        return ok(message="Cart is already empty")
    try:
        with transactional("Failed to clear cart"):
            removed = cart_store.clear_session(cart_session)
    except Exception:
        return internal_error_response()
    return ok(
        {"session_id": cart_session.session_id, "removed_items": removed},
        message="Cart cleared",
    )
