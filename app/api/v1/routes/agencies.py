from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, ConfigDict, field_validator
from app.api.deps import get_agency_service, parse_query_params, storage_unavailable
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import StorageUnavailableError
from app.core.middleware import get_current_user
from app.services.agency_service import AgencyService, DEFAULT_AGENCY_SORT
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class AgencyListParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(1, ge=1)
    limit: int = Field(settings.default_page_size, ge=1)
    state: Optional[str] = None
    agency_type: Optional[str] = Field(None, alias="type")
    search: Optional[str] = None
    sort_by: str = Field(DEFAULT_AGENCY_SORT, alias="sortBy")
    sort_order: str = Field('asc', alias="sortOrder")

    @field_validator('limit')
    @classmethod
    def check_page_size(cls, v: int) -> int:
        if v > settings.agencies_max_page_size:
            raise ValueError(f"limit must be <= {settings.agencies_max_page_size}")
        return v

    @field_validator('sort_order')
    @classmethod
    def normalize_sort_order(cls, v: str) -> str:
        return 'desc' if v.lower() == 'desc' else 'asc'


def agency_list_params(request: Request) -> AgencyListParams:
    return parse_query_params(
        request,
        AgencyListParams,
        f"Invalid pagination parameters. Page and limit must be >= 1, limit <= {settings.agencies_max_page_size}",
    )


@router.get("")
@router.get("/")
def list_agencies(
    current_user: dict = Depends(get_current_user),
    params: AgencyListParams = Depends(agency_list_params),
    db: Session = Depends(get_db),
    service: AgencyService = Depends(get_agency_service),
):
    """List agencies (no quota applies)"""
    logger.info(f"list_agencies: Entry - user: {current_user['uid']}, page: {params.page}")

    try:
        result = service.list_agencies(
            db,
            page=params.page,
            limit=params.limit,
            state=params.state,
            agency_type=params.agency_type,
            search=params.search,
            sort_by=params.sort_by,
            sort_order=params.sort_order,
        )
        logger.info(f"list_agencies: Success - {len(result['data'])} agencies")
        return result
    except StorageUnavailableError as e:
        raise storage_unavailable('list_agencies', e)
    except Exception as e:
        logger.error(f"list_agencies: Failure - {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{agency_id}")
def get_agency(
    agency_id: str,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: AgencyService = Depends(get_agency_service),
):
    """Get an agency by ID"""
    logger.info(f"get_agency: Entry - user: {current_user['uid']}, agency: {agency_id}")

    try:
        return service.get_agency(db, agency_id)
    except HTTPException:
        raise
    except StorageUnavailableError as e:
        raise storage_unavailable('get_agency', e)
    except Exception as e:
        logger.error(f"get_agency: Failure - {e}")
        raise HTTPException(status_code=500, detail=str(e))
