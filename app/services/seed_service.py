import csv
import os
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session
from app.models.agency import Agency
from app.models.contact import Contact
import logging

logger = logging.getLogger(__name__)

AGENCY_FIELDS = ('name', 'state', 'state_code', 'type', 'website', 'county', 'created_at', 'updated_at')
CONTACT_FIELDS = (
    'first_name', 'last_name', 'email', 'phone', 'title', 'email_type',
    'contact_form_url', 'department', 'created_at', 'updated_at', 'firm_id',
)


def null_or_value(value) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def parse_population(value) -> Optional[int]:
    value = null_or_value(value)
    if value is None:
        return None
    try:
        return int(float(value.replace(',', '')))
    except ValueError:
        logger.warning(f"parse_population: Not a number - {value!r}")
        return None


def read_csv_rows(path: str) -> List[Dict[str, str]]:
    """Read a CSV export with a header row; a missing or empty file yields no rows"""
    if not os.path.exists(path):
        logger.warning(f"read_csv_rows: CSV not found - {path}")
        return []
    with open(path, newline='', encoding='utf-8') as f:
        rows = [row for row in csv.DictReader(f) if any((v or '').strip() for v in row.values())]
    if not rows:
        logger.warning(f"read_csv_rows: CSV is empty - {path}")
    return rows


class SeedService:
    """Upserts agency and contact rows from CSV exports"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def seed_agencies(self, db: Session, rows: Iterable[Dict[str, str]]) -> int:
        self.logger.info("seed_agencies: Entry")

        try:
            inserted = 0
            for row in rows:
                agency_id = null_or_value(row.get('id'))
                if not agency_id:
                    self.logger.warning(f"seed_agencies: Skipping agency with missing id: {str(row)[:200]}")
                    continue
                values = {field: null_or_value(row.get(field)) for field in AGENCY_FIELDS}
                if values['state_code']:
                    values['state_code'] = values['state_code'].upper()
                db.merge(Agency(id=agency_id, population=parse_population(row.get('population')), **values))
                inserted += 1
            db.commit()
            self.logger.info(f"seed_agencies: Success - {inserted} rows")
            return inserted
        except Exception as e:
            db.rollback()
            self.logger.error(f"seed_agencies: Failure - {e}")
            raise

    def seed_contacts(self, db: Session, rows: Iterable[Dict[str, str]]) -> Tuple[int, int]:
        """
        Upsert contacts. agency_id is kept only when it references a known
        agency, and agency_name is always taken from that agency.

        Returns (inserted, skipped).
        """
        self.logger.info("seed_contacts: Entry")

        try:
            agency_names = {agency_id: name for agency_id, name in db.query(Agency.id, Agency.name)}
            inserted = skipped = 0
            for row in rows:
                contact_id = null_or_value(row.get('id'))
                if not contact_id:
                    self.logger.warning(f"seed_contacts: Skipping contact with missing id: {str(row)[:200]}")
                    skipped += 1
                    continue
                agency_id = null_or_value(row.get('agency_id'))
                if agency_id not in agency_names:
                    agency_id = None
                values = {field: null_or_value(row.get(field)) for field in CONTACT_FIELDS}
                db.merge(Contact(
                    id=contact_id,
                    agency_id=agency_id,
                    agency_name=agency_names.get(agency_id) if agency_id else None,
                    **values,
                ))
                inserted += 1
            db.commit()
            self.logger.info(f"seed_contacts: Success - {inserted} rows, {skipped} skipped")
            return inserted, skipped
        except Exception as e:
            db.rollback()
            self.logger.error(f"seed_contacts: Failure - {e}")
            raise
