from typing import Sequence, Set
from datetime import datetime
from sqlalchemy import and_, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from app.core.exceptions import StorageUnavailableError
from app.models.quota import ContactViewCount, ViewedContact
from app.services.quota_store import ChargeResult
import logging

logger = logging.getLogger(__name__)

SUPPORTED_DIALECTS = ('postgresql', 'sqlite')

_COUNTER_KEY = ['user_id', 'view_date']
_MARK_KEY = ['user_id', 'view_date', 'contact_id']


def check_dialect(bind) -> None:
    """Fail fast for databases without ON CONFLICT support"""
    dialect = bind.dialect.name
    if dialect not in SUPPORTED_DIALECTS:
        raise ValueError(f"SQL quota store supports {', '.join(SUPPORTED_DIALECTS)}, got {dialect!r}")


def _upsert_insert(db: Session, table):
    """Dialect-specific INSERT supporting ON CONFLICT clauses"""
    dialect = db.get_bind().dialect.name
    if dialect == 'postgresql':
        return postgresql.insert(table)
    if dialect == 'sqlite':
        return sqlite.insert(table)
    raise NotImplementedError(f"Quota store does not support dialect: {dialect}")


class SqlQuotaStore:
    """
    Relational quota store.

    Every write runs in its own short transaction. charge() and reconcile()
    serialize per (user_id, view_date) by upserting the counter row and then
    selecting it FOR UPDATE; on SQLite the first write takes the database
    write lock instead.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _counter_filter(user_id: str, day: str):
        return and_(ContactViewCount.user_id == user_id, ContactViewCount.view_date == day)

    @staticmethod
    def _marks_filter(user_id: str, day: str):
        return and_(ViewedContact.user_id == user_id, ViewedContact.view_date == day)

    def _ensure_counter(self, db: Session, user_id: str, day: str):
        now = datetime.utcnow()
        stmt = _upsert_insert(db, ContactViewCount.__table__).values(
            user_id=user_id, view_date=day, count=0, created_at=now, updated_at=now
        ).on_conflict_do_nothing(index_elements=_COUNTER_KEY)
        db.execute(stmt)

    def _lock_counter(self, db: Session, user_id: str, day: str) -> int:
        self._ensure_counter(db, user_id, day)
        return db.query(ContactViewCount.count).filter(
            self._counter_filter(user_id, day)
        ).with_for_update().scalar() or 0

    def _insert_marks(self, db: Session, user_id: str, day: str, contact_ids: Sequence[str]):
        now = datetime.utcnow()
        rows = [
            {'user_id': user_id, 'view_date': day, 'contact_id': contact_id, 'created_at': now}
            for contact_id in contact_ids
        ]
        stmt = _upsert_insert(db, ViewedContact.__table__).on_conflict_do_nothing(index_elements=_MARK_KEY)
        db.execute(stmt, rows)

    def get_count(self, user_id: str, day: str) -> int:
        try:
            with self._session_factory() as db:
                count = db.query(ContactViewCount.count).filter(
                    self._counter_filter(user_id, day)
                ).scalar()
            return count or 0
        except SQLAlchemyError as e:
            self.logger.error(f"get_count: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('get_count', e) from e

    def get_marks(self, user_id: str, day: str) -> Set[str]:
        try:
            with self._session_factory() as db:
                rows = db.query(ViewedContact.contact_id).filter(
                    self._marks_filter(user_id, day)
                ).all()
            return {row[0] for row in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"get_marks: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('get_marks', e) from e

    def add_marks(self, user_id: str, day: str, contact_ids: Sequence[str]) -> None:
        contact_ids = list(dict.fromkeys(contact_ids))
        if not contact_ids:
            return
        try:
            with self._session_factory() as db:
                with db.begin():
                    self._insert_marks(db, user_id, day, contact_ids)
            self.logger.debug(f"add_marks: Success - user: {user_id}, day: {day}, ids: {len(contact_ids)}")
        except SQLAlchemyError as e:
            self.logger.error(f"add_marks: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('add_marks', e) from e

    def increment_count(self, user_id: str, day: str, delta: int) -> int:
        try:
            with self._session_factory() as db:
                with db.begin():
                    now = datetime.utcnow()
                    table = ContactViewCount.__table__
                    stmt = _upsert_insert(db, table).values(
                        user_id=user_id, view_date=day, count=delta, created_at=now, updated_at=now
                    ).on_conflict_do_update(
                        index_elements=_COUNTER_KEY,
                        set_={'count': table.c.count + delta, 'updated_at': now},
                    )
                    db.execute(stmt)
                    # Still inside the upsert's transaction, so no other writer can interleave
                    new_count = db.query(ContactViewCount.count).filter(
                        self._counter_filter(user_id, day)
                    ).scalar()
            self.logger.debug(f"increment_count: Success - user: {user_id}, day: {day}, count: {new_count}")
            return new_count
        except SQLAlchemyError as e:
            self.logger.error(f"increment_count: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('increment_count', e) from e

    def reset(self, user_id: str, day: str) -> None:
        self.logger.info(f"reset: Entry - user: {user_id}, day: {day}")
        try:
            with self._session_factory() as db:
                with db.begin():
                    marks_deleted = db.query(ViewedContact).filter(
                        self._marks_filter(user_id, day)
                    ).delete(synchronize_session=False)
                    db.query(ContactViewCount).filter(
                        self._counter_filter(user_id, day)
                    ).delete(synchronize_session=False)
            self.logger.info(f"reset: Success - user: {user_id}, day: {day}, marks deleted: {marks_deleted}")
        except SQLAlchemyError as e:
            self.logger.error(f"reset: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('reset', e) from e

    def charge(self, user_id: str, day: str, contact_ids: Sequence[str], limit: int) -> ChargeResult:
        contact_ids = list(dict.fromkeys(contact_ids))
        self.logger.info(f"charge: Entry - user: {user_id}, day: {day}, candidates: {len(contact_ids)}")

        try:
            with self._session_factory() as db:
                with db.begin():
                    current = self._lock_counter(db, user_id, day)
                    if not contact_ids:
                        return ChargeResult(count=current)

                    marked = {
                        row[0] for row in db.query(ViewedContact.contact_id).filter(
                            self._marks_filter(user_id, day),
                            ViewedContact.contact_id.in_(contact_ids),
                        )
                    }
                    already_marked = [cid for cid in contact_ids if cid in marked]
                    capacity = max(0, limit - current)
                    charged = [cid for cid in contact_ids if cid not in marked][:capacity]

                    if charged:
                        self._insert_marks(db, user_id, day, charged)
                        db.query(ContactViewCount).filter(
                            self._counter_filter(user_id, day)
                        ).update(
                            {
                                ContactViewCount.count: ContactViewCount.count + len(charged),
                                ContactViewCount.updated_at: datetime.utcnow(),
                            },
                            synchronize_session=False,
                        )

            result = ChargeResult(charged=charged, already_marked=already_marked, count=current + len(charged))
            self.logger.info(
                f"charge: Success - user: {user_id}, day: {day}, charged: {len(charged)}, count: {result.count}/{limit}"
            )
            return result
        except SQLAlchemyError as e:
            self.logger.error(f"charge: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('charge', e) from e

    def reconcile(self, user_id: str, day: str) -> int:
        self.logger.info(f"reconcile: Entry - user: {user_id}, day: {day}")
        try:
            with self._session_factory() as db:
                with db.begin():
                    previous = self._lock_counter(db, user_id, day)
                    marks = db.query(func.count(ViewedContact.contact_id)).filter(
                        self._marks_filter(user_id, day)
                    ).scalar() or 0
                    if marks != previous:
                        db.query(ContactViewCount).filter(
                            self._counter_filter(user_id, day)
                        ).update(
                            {ContactViewCount.count: marks, ContactViewCount.updated_at: datetime.utcnow()},
                            synchronize_session=False,
                        )
            if marks != previous:
                self.logger.warning(f"reconcile: Repaired - user: {user_id}, day: {day}, count: {previous} -> {marks}")
            else:
                self.logger.info(f"reconcile: Success - user: {user_id}, day: {day}, count: {marks}")
            return marks
        except SQLAlchemyError as e:
            self.logger.error(f"reconcile: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('reconcile', e) from e
