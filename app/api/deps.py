import json
from typing import Optional, Type, TypeVar
from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel, ValidationError
from app.services.contact_quota_service import ContactQuotaService
from app.services.contact_service import ContactService
from app.services.agency_service import AgencyService
import logging

logger = logging.getLogger(__name__)

ParamsModel = TypeVar("ParamsModel", bound=BaseModel)


def get_quota_service(request: Request) -> ContactQuotaService:
    """Quota engine built once at startup (see app.main lifespan)"""
    return request.app.state.quota_service


def get_contact_service(
    quota_service: ContactQuotaService = Depends(get_quota_service),
) -> ContactService:
    return ContactService(quota_service)


def get_agency_service() -> AgencyService:
    return AgencyService()


def parse_query_params(request: Request, model: Type[ParamsModel], error: Optional[str] = None) -> ParamsModel:
    """Validate query parameters against model; failures are reported as 400 with details"""
    try:
        return model.model_validate(dict(request.query_params))
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": error or "Invalid query parameters",
                "errors": json.loads(e.json(include_url=False)),
            },
        )


def storage_unavailable(action: str, e: Exception) -> HTTPException:
    """Map StorageUnavailableError to a retryable 503; nothing was recorded"""
    logger.error(f"{action}: Storage unavailable - {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Storage temporarily unavailable",
    )
