"""
Report subscription records that break the plan/status invariants.

Read-only: records are listed for follow-up (usually a reconcile_user run or
a catalog update for an unmapped product), never changed.

Run: python -m scripts.audit_subscriptions
"""
import logging
import sys
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict

from theralink.db.session import SessionLocal
from theralink.services.subscription_store import find_inconsistent_subscriptions

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_audit(db=None) -> Dict[str, Any]:
    own_session = db is None
    db = db or SessionLocal()
    try:
        issues = find_inconsistent_subscriptions(db)
    finally:
        if own_session:
            db.close()

    by_type = Counter(issue["type"] for issue in issues)
    for issue in issues:
        logger.warning(
            f"Inconsistent subscription: type={issue['type']}, user_id={issue['user_id']}, "
            f"plan={issue['plan']}, status={issue['status']}"
        )

    return {
        "issues_found": len(issues),
        "by_type": dict(by_type),
        "issues": issues,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    report = run_audit()
    print(f"\nIssues found: {report['issues_found']} {report['by_type']}")
    sys.exit(1 if report["issues_found"] else 0)
