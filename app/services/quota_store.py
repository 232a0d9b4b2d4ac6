"""
Quota store contract for the daily contact-view limiter.

A store owns two entities per (user_id, day):
    - the view counter: how many unique contacts were charged that day
    - the marks: which contact ids were charged that day

Invariant kept by every implementation: count == len(marks).
"""

from dataclasses import dataclass, field
from typing import Protocol, Sequence, Set, List
import logging

logger = logging.getLogger(__name__)


@dataclass
class ChargeResult:
    charged: List[str] = field(default_factory=list)  # Newly marked, in request order
    already_marked: List[str] = field(default_factory=list)  # Marked before this commit
    count: int = 0  # Counter value after the commit


class QuotaStore(Protocol):
    """Storage contract used by ContactQuotaService; days are 'YYYY-MM-DD' strings"""

    def get_count(self, user_id: str, day: str) -> int:
        ...

    def get_marks(self, user_id: str, day: str) -> Set[str]:
        ...

    def add_marks(self, user_id: str, day: str, contact_ids: Sequence[str]) -> None:
        ...

    def increment_count(self, user_id: str, day: str, delta: int) -> int:
        ...

    def reset(self, user_id: str, day: str) -> None:
        ...

    def charge(self, user_id: str, day: str, contact_ids: Sequence[str], limit: int) -> ChargeResult:
        """
        Atomically mark and count ids that are not yet marked, in order, while
        the counter stays below limit. Ids beyond the limit are left untouched.
        """
        ...

    def reconcile(self, user_id: str, day: str) -> int:
        """Rewrite the counter from the marks (marks are the source of truth)"""
        ...


def create_quota_store(backend: str, session_factory=None, redis_client=None, ttl_hours: int = 48) -> QuotaStore:
    """Build the configured store once at process start"""
    logger.info(f"create_quota_store: Entry - backend: {backend}")

    if backend == 'sql':
        from app.services.sql_quota_store import SqlQuotaStore, check_dialect
        if session_factory is None:
            raise ValueError("SQL quota store requires a session factory")
        bind = session_factory.kw.get('bind')
        if bind is not None:
            check_dialect(bind)
        return SqlQuotaStore(session_factory)

    if backend == 'redis':
        from app.services.redis_quota_store import RedisQuotaStore
        if redis_client is None:
            raise ValueError("Redis quota store requires a redis client")
        return RedisQuotaStore(redis_client, ttl_seconds=ttl_hours * 3600)

    raise ValueError(f"Unknown quota backend: {backend}")
