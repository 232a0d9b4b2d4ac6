from app.models.agency import Agency
from app.models.contact import Contact
from app.models.quota import ContactViewCount, ViewedContact

__all__ = ["Agency", "Contact", "ContactViewCount", "ViewedContact"]
