from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from theralink.db.base import Base

# Local subscription statuses, mirrored from the provider
STATUS_INACTIVE = "inactive"
STATUS_TRIALING = "trialing"
STATUS_ACTIVE = "active"
STATUS_PAST_DUE = "past_due"
STATUS_CANCELED = "canceled"
STATUS_UNPAID = "unpaid"

SUBSCRIPTION_STATUSES = (
    STATUS_INACTIVE,
    STATUS_TRIALING,
    STATUS_ACTIVE,
    STATUS_PAST_DUE,
    STATUS_CANCELED,
    STATUS_UNPAID,
)

# Statuses that carry a paid plan
ENTITLED_STATUSES = (STATUS_ACTIVE, STATUS_TRIALING)


class Subscription(Base):
    """
    One row per user: what plan they are on and its lifecycle status.

    Written only by webhook ingestion and on-demand reconciliation, always as
    an upsert keyed by user_id. Rows are never deleted; cancellation sets
    status="canceled", plan="none".
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)

    role = Column(String, nullable=False, default="patient")  # patient | therapist
    plan = Column(String, nullable=False, default="none")  # plan_key | none | unknown
    status = Column(String, nullable=False, default=STATUS_INACTIVE)

    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_subscribed(self) -> bool:
        return self.status in ENTITLED_STATUSES and self.plan != "none"
