import math
from typing import Optional
from sqlalchemy import asc, desc, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.core.exceptions import StorageUnavailableError
from app.models.contact import Contact
from app.services.contact_quota_service import ContactQuotaService
import logging

logger = logging.getLogger(__name__)

CONTACT_SORT_FIELDS = ('first_name', 'last_name', 'email', 'phone', 'title', 'created_at')
DEFAULT_CONTACT_SORT = 'last_name'


def build_pagination(page: int, limit: int, total: int, more_allowed: bool = True) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'totalPages': total_pages,
        'hasNextPage': page < total_pages and more_allowed,
        'hasPreviousPage': page > 1,
    }


def ci_contains(column, term: str):
    """Case-insensitive substring match with LIKE wildcards escaped"""
    return func.lower(column).contains(term.lower(), autoescape=True)


class ContactService:
    def __init__(self, quota_service: ContactQuotaService):
        self.quota = quota_service
        self.logger = logging.getLogger(__name__)

    def _fetch_page(
        self,
        db: Session,
        page: int,
        limit: int,
        agency_name: Optional[str],
        search: Optional[str],
        sort_by: str,
        sort_order: str,
    ):
        query = db.query(Contact)

        if agency_name:
            query = query.filter(ci_contains(Contact.agency_name, agency_name))

        if search:
            query = query.filter(or_(
                ci_contains(Contact.first_name, search),
                ci_contains(Contact.last_name, search),
                ci_contains(Contact.email, search),
            ))

        if sort_by not in CONTACT_SORT_FIELDS:
            sort_by = DEFAULT_CONTACT_SORT
        direction = desc if sort_order == 'desc' else asc

        total = query.count()
        # id tiebreak keeps the page order, and so the quota truncation, stable
        contacts = query.order_by(
            direction(getattr(Contact, sort_by)), Contact.id.asc()
        ).offset((page - 1) * limit).limit(limit).all()
        return total, contacts

    def list_contacts(
        self,
        db: Session,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        agency_name: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = DEFAULT_CONTACT_SORT,
        sort_order: str = 'asc',
    ) -> dict:
        """List one page of contacts, restricted to what the caller's daily quota admits"""
        self.logger.info(
            f"list_contacts: Entry - user: {user_id}, page: {page}, limit: {limit}, "
            f"agency: {agency_name}, search: {search}, sort: {sort_by} {sort_order}"
        )

        try:
            try:
                total, contacts = self._fetch_page(db, page, limit, agency_name, search, sort_by, sort_order)
            except SQLAlchemyError as e:
                raise StorageUnavailableError('list_contacts', e) from e

            admission = self.quota.admit(user_id, [contact.id for contact in contacts])
            admitted = set(admission.admitted)

            response = {
                'success': not admission.truncated,
                'limitExceeded': admission.limit_exceeded,
                'viewedToday': admission.viewed_today,
                'remaining': admission.remaining,
                'data': [contact.to_dict() for contact in contacts if contact.id in admitted],
                'pagination': build_pagination(page, limit, total, more_allowed=admission.remaining > 0),
            }
            if admission.truncated or admission.limit_exceeded:
                response['message'] = (
                    f"You have reached your daily limit of {self.quota.daily_limit} contacts. "
                    "Upgrade your plan to view more."
                )

            self.logger.info(
                f"list_contacts: Success - user: {user_id}, returned: {len(response['data'])}/{len(contacts)}, "
                f"viewed today: {admission.viewed_today}, remaining: {admission.remaining}"
            )
            return response
        except Exception as e:
            self.logger.error(f"list_contacts: Failure - user: {user_id}, error: {e}")
            raise

    def get_usage(self, user_id: str) -> dict:
        self.logger.info(f"get_usage: Entry - user: {user_id}")

        try:
            viewed = self.quota.get_viewed_today(user_id)
            usage = {
                'viewedToday': viewed,
                'remaining': self.quota.remaining_after(viewed),
                'dailyLimit': self.quota.daily_limit,
            }
            self.logger.info(f"get_usage: Success - user: {user_id}, viewed today: {viewed}")
            return usage
        except Exception as e:
            self.logger.error(f"get_usage: Failure - user: {user_id}, error: {e}")
            raise
