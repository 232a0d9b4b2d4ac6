from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship
from app.core.database import Base


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(String, primary_key=True, index=True)
    first_name = Column(String, index=True)
    last_name = Column(String, index=True)
    email = Column(String)
    phone = Column(String)
    title = Column(String)
    email_type = Column(String)
    contact_form_url = Column(String)
    department = Column(String)
    agency_name = Column(String, index=True)  # Denormalized from agencies.name for filtering
    agency_id = Column(String, ForeignKey("agencies.id", ondelete="SET NULL"), nullable=True, index=True)
    firm_id = Column(String)
    created_at = Column(String)
    updated_at = Column(String)

    # Relationships
    agency = relationship("Agency", back_populates="contacts")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "title": self.title,
            "email_type": self.email_type,
            "contact_form_url": self.contact_form_url,
            "department": self.department,
            "agency_name": self.agency_name,
            "agency_id": self.agency_id,
            "firm_id": self.firm_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
