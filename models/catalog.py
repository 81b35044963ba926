# --- models/catalog.py ---
from models import db, BIGINT
from datetime import datetime


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(BIGINT, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Pricing (variants carry their own price)
    base_price = db.Column(db.Numeric(10, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    variants = db.relationship("ProductVariant", back_populates="product", lazy=True)


class ProductVariant(db.Model):
    __tablename__ = "product_variants"

    id = db.Column(BIGINT, primary_key=True)
    product_id = db.Column(BIGINT, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(255), nullable=False)             # 500g, 1kg, Red ...
    sku = db.Column(db.String(100), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)

    # NULL = unlimited stock; any integer (0 included) is a hard ceiling
    stock_quantity = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = db.relationship("Product", back_populates="variants")
