"""
Notification preferences mirrored from the user directory
"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from pricewatch.core.database import Base

class UserPreferenceModel(Base):
    """Per-user contact and channel switches"""
    __tablename__ = "user_preferences"
    
    user_id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True)
    display_name = Column(String(100), nullable=True)
    email_enabled = Column(Boolean, default=True)
    push_enabled = Column(Boolean, default=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
