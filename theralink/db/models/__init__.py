"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from theralink.db.models.user import User
from theralink.db.models.subscription import Subscription
from theralink.db.models.patient_link import PatientTherapistRelation

__all__ = [
    "User",
    "Subscription",
    "PatientTherapistRelation",
]
