from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from theralink.db.base import Base


class PatientTherapistRelation(Base):
    """
    Link between a therapist and a patient.

    Managed by the roster feature; billing only counts active links against
    the therapist's plan capacity.
    """
    __tablename__ = "patient_therapist_relations"

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String, nullable=False, default="pending")  # pending | active | ended
    invitation_email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_therapist_status', 'therapist_id', 'status'),
    )
