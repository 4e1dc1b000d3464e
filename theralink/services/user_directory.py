"""
Read-only lookups against collaborator tables (user directory, patient roster).
"""
import logging
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from theralink.db.models.user import User
from theralink.db.models.patient_link import PatientTherapistRelation

logger = logging.getLogger(__name__)


def find_user_by_email(db: Session, email: Optional[str]) -> Optional[User]:
    """Find a user by email, case-insensitively. Returns None if no match."""
    if not email:
        return None
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def count_active_patients(db: Session, therapist_id: int) -> int:
    """Count active patient links where the user is the therapist."""
    count = db.query(func.count(PatientTherapistRelation.id)).filter(
        PatientTherapistRelation.therapist_id == therapist_id,
        PatientTherapistRelation.status == "active"
    ).scalar()
    return int(count or 0)
