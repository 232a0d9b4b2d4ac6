from fastapi import APIRouter
from app.api.v1.routes import agencies, contacts

api_router = APIRouter()

api_router.include_router(contacts.router, prefix="/contacts", tags=["contacts"])
api_router.include_router(agencies.router, prefix="/agencies", tags=["agencies"])
