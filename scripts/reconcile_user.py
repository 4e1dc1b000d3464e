"""
Force a subscription reconciliation for one user.

For support tickets where a payment went through but the plan did not
update (missed webhook). Same code path as POST /billing/check-subscription.

Run: python -m scripts.reconcile_user someone@example.com
"""
import argparse
import logging
import sys

from theralink.core.exceptions import BillingSyncError
from theralink.core.plan_catalog import build_plan_catalog
from theralink.db.session import SessionLocal
from theralink.services.reconciliation_service import reconcile_subscription
from theralink.services.stripe_service import StripeBillingProvider
from theralink.services.user_directory import find_user_by_email

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def reconcile_user(email: str, db=None, provider=None, catalog=None):
    """
    Reconcile one user by email.

    Returns:
        The reconciliation result as a dict, or None if the user is unknown
    """
    own_session = db is None
    db = db or SessionLocal()
    provider = provider or StripeBillingProvider()
    catalog = catalog or build_plan_catalog()

    try:
        user = find_user_by_email(db, email)
        if not user:
            logger.error(f"User {email} not found")
            return None

        logger.info(f"Reconciling subscription for user_id={user.id}")
        result = reconcile_subscription(db, user, provider, catalog)
        return result.to_dict()
    finally:
        if own_session:
            db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile a user's subscription with Stripe")
    parser.add_argument("email", help="Email of the user to reconcile")
    args = parser.parse_args(argv)

    try:
        result = reconcile_user(args.email)
    except BillingSyncError as e:
        logger.error(f"Reconciliation failed: {e}")
        return 1

    if result is None:
        print(f"\n[ERROR] No user with email {args.email}")
        return 1

    print(f"\n[SUCCESS] {args.email}: subscribed={result['subscribed']}, plan={result['plan']}, "
          f"subscription_end={result['subscription_end']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
