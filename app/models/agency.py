from sqlalchemy import Column, String, Integer
from sqlalchemy.orm import relationship
from app.core.database import Base


class Agency(Base):
    __tablename__ = "agencies"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, index=True)
    state = Column(String)
    state_code = Column(String, index=True)  # Two-letter code, stored upper-case
    type = Column(String)
    population = Column(Integer, nullable=True)
    website = Column(String)
    county = Column(String)
    created_at = Column(String)  # ISO timestamps as delivered by the CSV export
    updated_at = Column(String)

    # Relationships
    contacts = relationship("Contact", back_populates="agency", passive_deletes=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state,
            "state_code": self.state_code,
            "type": self.type,
            "population": self.population,
            "website": self.website,
            "county": self.county,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
