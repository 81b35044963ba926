import os
import sys
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from models import db
from models.catalog import Product, ProductVariant
from models.cart import CartSession, CartItem


@pytest.fixture(scope='session')
def app_instance():
    os.environ.setdefault('APP_ENV', 'testing')
    os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
    os.environ.setdefault('TWILIO_ACCOUNT_SID', 'dummy')
    os.environ.setdefault('TWILIO_AUTH_TOKEN', 'dummy')
    os.environ.setdefault('TWILIO_WHATSAPP_FROM', 'dummy')
    from app import create_app
    app = create_app()
    app.config.update(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI='sqlite:///:memory:',
        SQLALCHEMY_TRACK_MODIFICATIONS=False
    )
    return app

@pytest.fixture(scope='function')
def app(app_instance):
    with app_instance.app_context():
        db.drop_all()
        db.create_all()
        yield app_instance
        db.session.remove()
        db.drop_all()

@pytest.fixture(scope='function')
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Return a bearer header for a (created on demand) user."""
    def _login(email="client@example.com", role="client", **extra):
        resp = client.post("/__auth/login_stub", json=dict(email=email, role=role, **extra))
        return {"Authorization": f"Bearer {resp.get_json()['data']['access']}"}
    return _login


@pytest.fixture
def make_product(app):
    def _make(name="Coffee", base_price="10.00", is_active=True):
        product = Product(
            name=name,
            slug=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}",
            base_price=Decimal(base_price) if base_price is not None else None,
            is_active=is_active,
        )
        db.session.add(product)
        db.session.commit()
        return product
    return _make


@pytest.fixture
def make_variant(app):
    def _make(product, name="500g", price="12.50", stock_quantity=None, is_active=True):
        variant = ProductVariant(
            product_id=product.id,
            name=name,
            sku=f"SKU-{uuid.uuid4().hex[:6]}",
            price=Decimal(price),
            stock_quantity=stock_quantity,
            is_active=is_active,
        )
        db.session.add(variant)
        db.session.commit()
        return variant
    return _make


@pytest.fixture
def make_cart(app):
    """Seed a cart session directly; ``lines`` is a list of (product, variant, qty)."""
    def _make(lines=(), user=None, expires_in=timedelta(days=30)):
        cart = CartSession(
            session_id=uuid.uuid4().hex,
            user_id=user.id if user is not None else None,
            expires_at=datetime.utcnow() + expires_in,
        )
        db.session.add(cart)
        db.session.flush()
        for product, variant, qty in lines:
            db.session.add(CartItem(
                cart_session_id=cart.id,
                product_id=product.id,
                product_variant_id=variant.id if variant is not None else None,
                quantity=qty,
            ))
        db.session.commit()
        return cart
    return _make
