import uuid
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from app.db.base import Base


class Tier(str, Enum):
    """Account classification governing the token limit."""
    TRIAL = "trial"
    PAID = "paid"


class SubscriptionStatus(str, Enum):
    """Payment-provider subscription status. NULL means the account never subscribed."""
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def _enum_values(enum_cls):
    # Store "trial"/"active" rather than member names
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=True)  # NULL for OAuth-only accounts
    name = Column(String, nullable=True)
    image = Column(String, nullable=True)

    tier = Column(
        SQLEnum(Tier, native_enum=False, length=16, values_callable=_enum_values),
        default=Tier.TRIAL,
        nullable=False,
    )
    tokens_used = Column(Integer, default=0, nullable=False)
    token_limit = Column(Integer, nullable=False)

    subscription_status = Column(
        SQLEnum(SubscriptionStatus, native_enum=False, length=16, values_callable=_enum_values),
        nullable=True,
    )
    subscription_expires_at = Column(DateTime(timezone=True), nullable=True)
    payment_reference = Column(String, nullable=True)  # Stripe checkout session / subscription id

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, tier={self.tier}, tokens_used={self.tokens_used}/{self.token_limit})>"
