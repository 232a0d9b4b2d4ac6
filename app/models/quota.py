from sqlalchemy import Column, String, Integer, DateTime, Index
from app.core.database import Base
from datetime import datetime


class ContactViewCount(Base):
    """Unique contacts charged against a user's quota on one calendar day"""
    __tablename__ = "contact_view_counts"

    user_id = Column(String, primary_key=True)  # Identity provider uid
    view_date = Column(String(10), primary_key=True)  # 'YYYY-MM-DD' (UTC)
    count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ViewedContact(Base):
    """A contact already charged for (user_id, view_date); one row per triple"""
    __tablename__ = "viewed_contacts"

    user_id = Column(String, primary_key=True)
    view_date = Column(String(10), primary_key=True)
    contact_id = Column(String, primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_viewed_contacts_user_date", "user_id", "view_date"),
    )
