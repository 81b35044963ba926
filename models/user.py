# --- models/user.py ---
from models import db, BIGINT
from datetime import datetime


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(BIGINT, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=True)
    whatsapp_phone = db.Column(db.String(20), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="client")  # client, admin
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_guest = db.Column(db.Boolean, nullable=False, default=False)  # placeholder account from guest checkout
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    orders = db.relationship("Order", back_populates="user", lazy=True)

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_summary(self, is_existing_user=None):
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "is_guest": self.is_guest,
        }
        if is_existing_user is not None:
            data["is_existing_user"] = is_existing_user
        return data

    def __repr__(self):
        return f"<User id={self.id} role={self.role} guest={self.is_guest}>"
