from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from theralink.db.base import Base

class User(Base):
    """
    User directory entry.

    Owned by the auth/profile service; this service only reads it to map
    provider customer emails to internal user ids and to learn a user's role.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=True)  # patient | therapist | admin
    created_at = Column(DateTime(timezone=True), server_default=func.now())
