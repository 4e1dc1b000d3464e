"""
Subscription record store.

Every write is an upsert keyed by user_id, so at most one record exists per
user. Concurrent writers (webhook ingestion and on-demand reconciliation) are
not ordered: the last write for a user wins. A write that would not change
any field is skipped entirely, updated_at included, which keeps repeated
reconciliation runs idempotent.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from theralink.core.plan_catalog import PLAN_NONE, PLAN_UNKNOWN, ROLE_PATIENT
from theralink.db.models.subscription import (
    Subscription,
    SUBSCRIPTION_STATUSES,
    ENTITLED_STATUSES,
    STATUS_INACTIVE,
    STATUS_PAST_DUE,
)

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = (
    "role",
    "plan",
    "status",
    "stripe_customer_id",
    "stripe_subscription_id",
    "current_period_end",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo; compare everything in naive UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _same(current: Any, new: Any) -> bool:
    if isinstance(current, datetime) or isinstance(new, datetime):
        return _as_naive_utc(current) == _as_naive_utc(new)
    return current == new


def get_subscription(db: Session, user_id: int) -> Optional[Subscription]:
    """Get the subscription record for a user, if one exists."""
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def _apply_upsert(db: Session, user_id: int, default_role: Optional[str], changes: Dict[str, Any]) -> Subscription:
    record = get_subscription(db, user_id)
    created = False

    if record is None:
        # Records are created lazily, starting from the unsubscribed state
        record = Subscription(
            user_id=user_id,
            role=default_role or ROLE_PATIENT,
            plan=PLAN_NONE,
            status=STATUS_INACTIVE,
        )
        db.add(record)
        created = True

    changed = [name for name, value in changes.items() if not _same(getattr(record, name), value)]
    for name in changed:
        setattr(record, name, changes[name])

    if record.status in ENTITLED_STATUSES and record.plan == PLAN_NONE:
        db.rollback()
        raise ValueError(f"Status {record.status} requires a plan: user_id={user_id}")

    if not created and not changed:
        logger.debug(f"Subscription unchanged: user_id={user_id}")
        return record

    record.updated_at = _utcnow()
    db.commit()
    db.refresh(record)

    logger.info(
        f"Subscription upserted: user_id={user_id}, created={created}, "
        f"changed={changed}, plan={record.plan}, status={record.status}"
    )
    return record


def upsert_subscription(
    db: Session,
    user_id: int,
    default_role: Optional[str] = None,
    **changes: Any
) -> Subscription:
    """
    Create or update the subscription record for a user.

    Args:
        db: Database session
        user_id: Owner of the record
        default_role: Role to use if the record has to be created
        **changes: Fields to overwrite (see WRITABLE_FIELDS)

    Returns:
        The stored record

    Raises:
        ValueError: On unknown fields, unknown statuses, or an active/trialing
            status without a plan
    """
    unknown = set(changes) - set(WRITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")
    if "status" in changes and changes["status"] not in SUBSCRIPTION_STATUSES:
        raise ValueError(f"Unknown subscription status: {changes['status']}")

    try:
        return _apply_upsert(db, user_id, default_role, changes)
    except IntegrityError:
        # Another writer inserted the row between our read and our insert
        db.rollback()
        logger.info(f"Concurrent subscription insert detected, retrying as update: user_id={user_id}")
        return _apply_upsert(db, user_id, default_role, changes)


def mark_past_due(db: Session, user_id: int, default_role: Optional[str] = None) -> Subscription:
    """Flag a failed payment. The plan is left as it is."""
    return upsert_subscription(db, user_id, default_role=default_role, status=STATUS_PAST_DUE)


def find_inconsistent_subscriptions(db: Session) -> List[Dict[str, Any]]:
    """
    Find records that break the plan/status invariants.

    Returns a list of issue dicts; nothing is modified.
    """
    issues = []
    records = db.query(Subscription).filter(
        or_(
            Subscription.plan == PLAN_UNKNOWN,
            Subscription.status.in_(ENTITLED_STATUSES),
            Subscription.status.notin_(SUBSCRIPTION_STATUSES),
        )
    ).all()

    for record in records:
        if record.status not in SUBSCRIPTION_STATUSES:
            issue = "invalid_status"
        elif record.status in ENTITLED_STATUSES and record.plan == PLAN_NONE:
            issue = "entitled_without_plan"
        elif record.plan == PLAN_UNKNOWN:
            issue = "unmapped_plan"
        else:
            continue
        issues.append({
            "type": issue,
            "user_id": record.user_id,
            "plan": record.plan,
            "status": record.status,
            "stripe_subscription_id": record.stripe_subscription_id,
        })

    return issues
