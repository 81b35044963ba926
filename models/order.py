from sqlalchemy import Column, String, Numeric, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from models import db, BIGINT

ORDER_STATUSES = ("pending", "accepted", "ready", "in_progress", "available", "cancelled")


class Order(db.Model):
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
    )
    id = Column(BIGINT, primary_key=True)
    user_id = Column(BIGINT, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)  # frozen at creation
    status = Column(String(20), nullable=False, default="pending")
    confirmation_message_ref = Column(String(64), nullable=True)  # WhatsApp message SID
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = db.relationship("User", back_populates="orders")
    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy=True,
    )

    @property
    def total_items(self):
        return sum(i.quantity for i in self.items)


class OrderItem(db.Model):
    __tablename__ = "order_items"
    id = db.Column(BIGINT, primary_key=True)
    order_id = db.Column(BIGINT, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = db.Column(BIGINT, db.ForeignKey("products.id"), nullable=False)
    product_variant_id = db.Column(BIGINT, db.ForeignKey("product_variants.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)   # price snapshot at order time
    total_price = db.Column(db.Numeric(10, 2), nullable=False)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    @property
    def display_name(self):
        if self.variant is not None:
            return f"{self.product.name} - {self.variant.name}"
        return self.product.name

    def to_dict(self):
        return {
            "product_name": self.product.name,
            "variant_name": self.variant.name if self.variant is not None else None,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "total_price": float(self.total_price),
        }


class OrderStatusLog(db.Model):
    __tablename__ = "order_status_log"
    id = Column(BIGINT, primary_key=True)
    order_id = Column(BIGINT, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    old_status = Column(String(20), nullable=True)
    status = Column(String(20), nullable=False)
    updated_by = Column(BIGINT, nullable=False)
    timestamp = Column(DateTime, default=func.now())

    def to_dict(self):
        return {
            "order_id": self.order_id,
            "old_status": self.old_status,
            "status": self.status,
            "updated_by": self.updated_by,
            "timestamp": self.timestamp,
        }
