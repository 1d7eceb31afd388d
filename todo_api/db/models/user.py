"""User model: account identity plus the embedded subscription snapshot."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from todo_api.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False, default="")
    role = Column(String(50), nullable=False, default="User")  # "User" | "Admin"

    # Stripe subscription snapshot (written only by the webhook pipeline)
    stripe_customer_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    subscription_status = Column(String(50), nullable=True)  # mirrors Stripe: active, trialing, canceled, ...
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
