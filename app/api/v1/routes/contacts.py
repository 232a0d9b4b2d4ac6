from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict, field_validator
from app.api.deps import get_contact_service, get_quota_service, parse_query_params, storage_unavailable
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import StorageUnavailableError
from app.core.middleware import get_current_user
from app.services.contact_quota_service import ContactQuotaService
from app.services.contact_service import ContactService, DEFAULT_CONTACT_SORT
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class ContactListParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)  # Allows both agency_name and agencyName

    page: int = Field(1, ge=1)
    limit: int = Field(settings.default_page_size, ge=1)
    agency_name: Optional[str] = Field(None, alias="agencyName")
    search: Optional[str] = None
    sort_by: str = Field(DEFAULT_CONTACT_SORT, alias="sortBy")
    sort_order: str = Field('asc', alias="sortOrder")

    @field_validator('limit')
    @classmethod
    def check_page_size(cls, v: int) -> int:
        if v > settings.contacts_max_page_size:
            raise ValueError(f"limit must be <= {settings.contacts_max_page_size}")
        return v

    @field_validator('sort_order')
    @classmethod
    def normalize_sort_order(cls, v: str) -> str:
        return 'desc' if v.lower() == 'desc' else 'asc'


def contact_list_params(request: Request) -> ContactListParams:
    return parse_query_params(
        request,
        ContactListParams,
        f"Invalid pagination parameters. Page and limit must be >= 1, limit <= {settings.contacts_max_page_size}",
    )


@router.get("")
@router.get("/")
def list_contacts(
    current_user: dict = Depends(get_current_user),
    params: ContactListParams = Depends(contact_list_params),
    db: Session = Depends(get_db),
    service: ContactService = Depends(get_contact_service),
):
    """List contacts; new contacts on the page count against the caller's daily quota"""
    logger.info(f"list_contacts: Entry - user: {current_user['uid']}, page: {params.page}")

    try:
        result = service.list_contacts(
            db,
            current_user['uid'],
            page=params.page,
            limit=params.limit,
            agency_name=params.agency_name,
            search=params.search,
            sort_by=params.sort_by,
            sort_order=params.sort_order,
        )
        logger.info(f"list_contacts: Success - {len(result['data'])} contacts")
        return result
    except StorageUnavailableError as e:
        raise storage_unavailable('list_contacts', e)
    except Exception as e:
        logger.error(f"list_contacts: Failure - {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/usage")
def get_usage(
    current_user: dict = Depends(get_current_user),
    service: ContactService = Depends(get_contact_service),
):
    """Today's contact-view usage for the caller"""
    try:
        return service.get_usage(current_user['uid'])
    except StorageUnavailableError as e:
        raise storage_unavailable('get_usage', e)
    except Exception as e:
        logger.error(f"get_usage: Failure - {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/reset-limit")
def reset_limit(
    current_user: dict = Depends(get_current_user),
    quota_service: ContactQuotaService = Depends(get_quota_service),
):
    """Reset the caller's contact-view quota for today"""
    logger.info(f"reset_limit: Entry - user: {current_user['uid']}")

    try:
        quota_service.reset(current_user['uid'])
        logger.info(f"reset_limit: Success - user: {current_user['uid']}")
        return {
            "success": True,
            "message": f"Daily limit has been reset. You can now view {quota_service.daily_limit} more contacts.",
        }
    except StorageUnavailableError as e:
        raise storage_unavailable('reset_limit', e)
    except Exception as e:
        logger.error(f"reset_limit: Failure - {e}")
        raise HTTPException(status_code=500, detail=str(e))
