from models import db, BIGINT
from datetime import datetime


class CartSession(db.Model):
    __tablename__ = "cart_sessions"

    id = db.Column(BIGINT, primary_key=True)
    session_id = db.Column(db.String(64), unique=True, nullable=False)
    user_id = db.Column(BIGINT, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship("User")
    items = db.relationship(
        "CartItem",
        back_populates="cart_session",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
        lazy=True,
    )

    def is_expired(self, now=None):
        return (now or datetime.utcnow()) >= self.expires_at


class CartItem(db.Model):
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint(
            "cart_session_id", "product_id", "product_variant_id", name="uq_cart_item_line"
        ),
    )

    id = db.Column(BIGINT, primary_key=True)
    cart_session_id = db.Column(BIGINT, db.ForeignKey("cart_sessions.id", ondelete="CASCADE"), nullable=False)
    product_id = db.Column(BIGINT, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    product_variant_id = db.Column(BIGINT, db.ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    added_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_updated = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    cart_session = db.relationship("CartSession", back_populates="items")
    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")
