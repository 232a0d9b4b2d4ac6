from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy import asc, desc, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.core.exceptions import StorageUnavailableError
from app.models.agency import Agency
from app.services.contact_service import build_pagination, ci_contains
import logging

logger = logging.getLogger(__name__)

AGENCY_SORT_FIELDS = ('name', 'state', 'population', 'created_at', 'type')
DEFAULT_AGENCY_SORT = 'name'


class AgencyService:
    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def list_agencies(
        self,
        db: Session,
        page: int = 1,
        limit: int = 10,
        state: Optional[str] = None,
        agency_type: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = DEFAULT_AGENCY_SORT,
        sort_order: str = 'asc',
    ) -> dict:
        self.logger.info(
            f"list_agencies: Entry - page: {page}, limit: {limit}, state: {state}, "
            f"type: {agency_type}, search: {search}, sort: {sort_by} {sort_order}"
        )

        try:
            query = db.query(Agency)

            if state:
                query = query.filter(Agency.state_code == state.upper())

            if agency_type:
                query = query.filter(func.lower(Agency.type) == agency_type.lower())

            if search:
                query = query.filter(or_(
                    ci_contains(Agency.name, search),
                    ci_contains(Agency.county, search),
                ))

            if sort_by not in AGENCY_SORT_FIELDS:
                sort_by = DEFAULT_AGENCY_SORT
            direction = desc if sort_order == 'desc' else asc

            total = query.count()
            agencies = query.order_by(
                direction(getattr(Agency, sort_by)), Agency.id.asc()
            ).offset((page - 1) * limit).limit(limit).all()

            self.logger.info(f"list_agencies: Success - returned: {len(agencies)}, total: {total}")
            return {
                'success': True,
                'data': [agency.to_dict() for agency in agencies],
                'pagination': build_pagination(page, limit, total),
            }
        except SQLAlchemyError as e:
            self.logger.error(f"list_agencies: Failure - {e}")
            raise StorageUnavailableError('list_agencies', e) from e

    def get_agency(self, db: Session, agency_id: str) -> dict:
        self.logger.info(f"get_agency: Entry - agency: {agency_id}")

        try:
            agency = db.query(Agency).filter(Agency.id == agency_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"get_agency: Failure - {e}")
            raise StorageUnavailableError('get_agency', e) from e

        if not agency:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Agency not found"
            )

        self.logger.info(f"get_agency: Success - agency: {agency_id}")
        return {'success': True, 'data': agency.to_dict()}
