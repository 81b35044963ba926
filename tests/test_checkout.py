from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from twilio.base.exceptions import TwilioException

from models import db
from models.cart import CartSession, CartItem
from models.catalog import ProductVariant
from models.order import Order, OrderItem
from models.user import User
from app.version import API_PREFIX
from app.services import order_conversion
from app.services.availability import snapshot_line
from app.services.errors import StockConflictError

ORDERS = f"{API_PREFIX}/orders"


def checkout(client, session_id, headers=None, **extra):
    return client.post(ORDERS, json=dict(session_id=session_id, **extra), headers=headers or {})


def guest_checkout(client, session_id, **extra):
    return client.post(f"{ORDERS}/guest", json=dict(session_id=session_id, **extra))


def _user_id(email):
    return User.query.filter_by(email=email).first().id


# -------------------- Happy path --------------------

def test_checkout_creates_order_and_empties_cart(client, login, make_product, make_cart):
    headers = login("alice@example.com")
    coffee = make_product("Coffee", "10.00")
    cart = make_cart([(coffee, None, 3)])

    resp = checkout(client, cart.session_id, headers, notes="Leave at the door")

    assert resp.status_code == 201
    body = resp.get_json()
    order = body["data"]["order"]
    assert order["total_amount"] == 30.0
    assert order["status"] == "pending"
    assert order["order_number"] == f"CMD-{order['id']:06d}"
    assert order["notes"] == "Leave at the door"
    assert order["items"] == [{
        "product_name": "Coffee",
        "variant_name": None,
        "quantity": 3,
        "unit_price": 10.0,
        "total_price": 30.0,
    }]
    assert order["summary"]["total_items"] == 3
    assert order["client_info"]["is_existing_user"] is True
    assert f"Order #{order['id']:06d}" in body["data"]["whatsapp_message"]
    assert len(body["data"]["next_steps"]) == 3

    assert CartItem.query.filter_by(cart_session_id=cart.id).count() == 0
    # session survives, only its lines are removed
    assert CartSession.query.filter_by(id=cart.id).first() is not None
    saved = db.session.get(Order, order["id"])
    assert saved.total_amount == Decimal("30.00")
    assert saved.user_id == _user_id("alice@example.com")


def test_order_total_matches_sum_of_lines(client, login, make_product, make_variant, make_cart):
    headers = login()
    coffee = make_product("Coffee", "10.00")
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", "4.25", stock_quantity=None)
    cart = make_cart([(coffee, None, 2), (tea, green, 3)])

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 201
    order_id = resp.get_json()["data"]["order"]["id"]
    items = OrderItem.query.filter_by(order_id=order_id).all()
    assert sum(i.total_price for i in items) == Decimal("32.75")
    assert db.session.get(Order, order_id).total_amount == Decimal("32.75")
    assert all(i.total_price == i.unit_price * i.quantity for i in items)


def test_limited_stock_is_decremented(client, login, make_product, make_variant, make_cart):
    headers = login()
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", "4.00", stock_quantity=5)
    black = make_variant(tea, "Black", "3.00", stock_quantity=None)
    cart = make_cart([(tea, green, 2), (tea, black, 4)])

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 201
    assert db.session.get(ProductVariant, green.id).stock_quantity == 3
    assert db.session.get(ProductVariant, black.id).stock_quantity is None


def test_exact_stock_can_be_ordered(client, login, make_product, make_variant, make_cart):
    headers = login()
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", stock_quantity=2)
    cart = make_cart([(tea, green, 2)])

    assert checkout(client, cart.session_id, headers).status_code == 201
    assert db.session.get(ProductVariant, green.id).stock_quantity == 0


def test_blank_notes_are_stored_as_null(client, login, make_product, make_cart):
    headers = login()
    cart = make_cart([(make_product(), None, 1)])
    resp = checkout(client, cart.session_id, headers, notes="   ")
    assert resp.status_code == 201
    assert resp.get_json()["data"]["order"]["notes"] is None
    assert "📝 *NOTES:* None" in resp.get_json()["data"]["whatsapp_message"]


# -------------------- Identity --------------------

def test_caller_relinks_cart_owned_by_someone_else(client, login, make_product, make_cart):
    login("owner@example.com")
    headers = login("caller@example.com")
    owner = User.query.filter_by(email="owner@example.com").first()
    cart = make_cart([(make_product(), None, 1)], user=owner)

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 201
    caller_id = _user_id("caller@example.com")
    assert db.session.get(Order, resp.get_json()["data"]["order"]["id"]).user_id == caller_id
    assert CartSession.query.filter_by(id=cart.id).first().user_id == caller_id


def test_guest_checkout_provisions_guest_identity(client, make_product, make_cart):
    cart = make_cart([(make_product("Coffee", "10.00"), None, 1)])

    resp = guest_checkout(client, cart.session_id, whatsapp_phone="+33600000000")

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert "whatsapp_message" not in data
    assert "next_steps" not in data
    client_info = data["order"]["client_info"]
    assert client_info["is_guest"] is True
    assert client_info["is_existing_user"] is False
    guest = db.session.get(User, client_info["id"])
    assert guest.whatsapp_phone == "+33600000000"
    assert CartSession.query.filter_by(id=cart.id).first().user_id == guest.id


def test_guest_checkout_ignores_existing_link(client, login, make_product, make_cart):
    login("owner@example.com")
    owner = User.query.filter_by(email="owner@example.com").first()
    cart = make_cart([(make_product(), None, 1)], user=owner)

    resp = guest_checkout(client, cart.session_id)

    assert resp.status_code == 201
    assert resp.get_json()["data"]["order"]["client_info"]["id"] != owner.id


def test_checkout_requires_auth(client, make_product, make_cart):
    cart = make_cart([(make_product(), None, 1)])
    assert checkout(client, cart.session_id).status_code == 401
    assert CartItem.query.filter_by(cart_session_id=cart.id).count() == 1


# -------------------- Rejections --------------------

def test_insufficient_stock_rejects_whole_order(client, login, make_product, make_variant, make_cart):
    headers = login()
    coffee = make_product("Coffee", "10.00")
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", stock_quantity=2)
    cart = make_cart([(coffee, None, 1), (tea, green, 5)])

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 422
    body = resp.get_json()
    assert body["message"] == "Some products are no longer available: Tea - Green"
    assert body["errors"] == ["Tea - Green"]
    assert Order.query.count() == 0
    assert CartItem.query.filter_by(cart_session_id=cart.id).count() == 2
    assert db.session.get(ProductVariant, green.id).stock_quantity == 2


def test_zero_stock_is_unavailable(client, login, make_product, make_variant, make_cart):
    headers = login()
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", stock_quantity=0)
    cart = make_cart([(tea, green, 1)])

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 422
    assert resp.get_json()["errors"] == ["Tea - Green"]


def test_inactive_product_is_unavailable(client, login, make_product, make_cart):
    headers = login()
    mug = make_product("Mug", "5.00", is_active=False)
    cart = make_cart([(mug, None, 1)])

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 422
    assert resp.get_json()["errors"] == ["Mug"]


def test_inactive_variant_is_unavailable(client, login, make_product, make_variant, make_cart):
    headers = login()
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", is_active=False)
    cart = make_cart([(tea, green, 1)])

    assert checkout(client, cart.session_id, headers).status_code == 422


def test_empty_cart_is_rejected(client, login, make_cart):
    headers = login()
    cart = make_cart([])
    resp = checkout(client, cart.session_id, headers)
    assert resp.status_code == 422
    assert resp.get_json()["message"] == "Cart is empty"


def test_empty_cart_does_not_provision_guest(client, make_cart):
    cart = make_cart([])
    assert guest_checkout(client, cart.session_id).status_code == 422
    assert User.query.count() == 0


def test_unknown_session_is_not_found(client, login):
    resp = checkout(client, "does-not-exist", login())
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Cart session is invalid or expired"


def test_expired_session_is_not_found(client, login, make_product, make_cart):
    headers = login()
    cart = make_cart([(make_product(), None, 1)], expires_in=timedelta(minutes=-5))
    assert checkout(client, cart.session_id, headers).status_code == 404
    assert Order.query.count() == 0


def test_payload_is_validated(client, login):
    headers = login()
    resp = checkout(client, "", headers)
    assert resp.status_code == 422
    assert "session_id" in resp.get_json()["errors"]
    resp = checkout(client, "abc", headers, notes="x" * 1001)
    assert resp.status_code == 422


# -------------------- Atomicity --------------------

def test_failure_midway_rolls_back_everything(client, monkeypatch, make_product, make_variant, make_cart):
    coffee = make_product("Coffee", "10.00")
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", stock_quantity=5)
    cart = make_cart([(coffee, None, 1), (tea, green, 2)])

    def explode(variant_id, quantity):
        raise RuntimeError("database went away")

    monkeypatch.setattr(order_conversion, "decrement_stock", explode)

    resp = guest_checkout(client, cart.session_id)

    assert resp.status_code == 500
    assert "database" not in resp.get_json()["message"]
    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert User.query.count() == 0
    assert CartItem.query.filter_by(cart_session_id=cart.id).count() == 2
    assert db.session.get(ProductVariant, green.id).stock_quantity == 5
    assert CartSession.query.filter_by(id=cart.id).first().user_id is None


def test_lost_stock_race_rolls_back(client, login, monkeypatch, make_product, make_variant, make_cart):
    headers = login()
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", stock_quantity=1)
    cart = make_cart([(tea, green, 3)])

    # pretend the check passed before a concurrent checkout took the stock
    monkeypatch.setattr(
        order_conversion, "check_availability", lambda lines: [snapshot_line(ci) for ci in lines]
    )

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 500
    assert Order.query.count() == 0
    assert db.session.get(ProductVariant, green.id).stock_quantity == 1
    assert CartItem.query.filter_by(cart_session_id=cart.id).count() == 1


def test_decrement_stock_guard(app, make_product, make_variant):
    tea = make_product("Tea", None)
    green = make_variant(tea, "Green", stock_quantity=1)
    with pytest.raises(StockConflictError):
        order_conversion.decrement_stock(green.id, 2)
    db.session.rollback()
    order_conversion.decrement_stock(green.id, 1)
    db.session.commit()
    assert db.session.get(ProductVariant, green.id).stock_quantity == 0


# -------------------- History --------------------

def test_order_history_only_lists_own_orders(client, login, make_product, make_cart):
    alice = login("alice@example.com")
    bob = login("bob@example.com")
    coffee = make_product()
    a_order = checkout(client, make_cart([(coffee, None, 1)]).session_id, alice).get_json()["data"]["order"]
    checkout(client, make_cart([(coffee, None, 2)]).session_id, bob)

    resp = client.get(ORDERS, headers=alice)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["total"] == 1
    assert data["orders"][0]["id"] == a_order["id"]

    assert client.get(f"{ORDERS}/{a_order['id']}", headers=alice).status_code == 200
    assert client.get(f"{ORDERS}/{a_order['id']}", headers=bob).status_code == 404


# -------------------- WhatsApp confirmation --------------------

class FakeMessages:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def create(self, from_, to, body):
        if self.fail:
            raise TwilioException("twilio down")
        self.sent.append({"from": from_, "to": to, "body": body})
        return SimpleNamespace(sid="SM123")


def test_confirmation_sent_and_reference_stored(app, client, login, monkeypatch, make_product, make_cart):
    messages = FakeMessages()
    monkeypatch.setattr(app, "twilio_client", SimpleNamespace(messages=messages), raising=False)
    monkeypatch.setitem(app.config, "WHATSAPP_CONFIRMATIONS_ENABLED", True)
    headers = login("alice@example.com", whatsapp_phone="+33611111111")
    cart = make_cart([(make_product("Coffee", "10.00"), None, 3)])

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert messages.sent[0]["to"] == "whatsapp:+33611111111"
    assert messages.sent[0]["body"] == data["whatsapp_message"]
    assert Order.query.filter_by(id=data["order"]["id"]).first().confirmation_message_ref == "SM123"


def test_confirmation_failure_keeps_order(app, client, login, monkeypatch, make_product, make_cart):
    monkeypatch.setattr(app, "twilio_client", SimpleNamespace(messages=FakeMessages(fail=True)), raising=False)
    monkeypatch.setitem(app.config, "WHATSAPP_CONFIRMATIONS_ENABLED", True)
    headers = login("alice@example.com", whatsapp_phone="+33611111111")
    cart = make_cart([(make_product(), None, 1)])

    resp = checkout(client, cart.session_id, headers)

    assert resp.status_code == 201
    order = Order.query.filter_by(id=resp.get_json()["data"]["order"]["id"]).first()
    assert order is not None
    assert order.confirmation_message_ref is None
