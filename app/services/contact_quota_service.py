from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Sequence
from app.services.quota_store import QuotaStore
import logging

logger = logging.getLogger(__name__)

DEFAULT_DAILY_CONTACT_LIMIT = 50


def utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


@dataclass
class AdmissionResult:
    admitted: List[str] = field(default_factory=list)  # Free and newly charged ids, request order
    counted_new: List[str] = field(default_factory=list)
    limit_exceeded: bool = False
    truncated: bool = False  # Some new ids were dropped for lack of quota
    viewed_today: int = 0
    remaining: int = 0


class ContactQuotaService:
    """
    Daily contact-view quota.

    Contacts already charged today are free. New contacts are charged in
    request order until the daily limit is reached, and the remainder is
    dropped from the response without being charged.
    """

    def __init__(
        self,
        store: QuotaStore,
        daily_limit: int = DEFAULT_DAILY_CONTACT_LIMIT,
        today: Callable[[], str] = utc_today,
    ):
        self.store = store
        self.daily_limit = daily_limit
        self._today = today
        self.logger = logging.getLogger(__name__)

    def admit(self, user_id: str, candidate_ids: Sequence[str]) -> AdmissionResult:
        """
        Decide which of candidate_ids may be shown to user_id and charge the new ones.

        Storage failures propagate unchanged: no admission is ever guessed.
        """
        self.logger.info(f"admit: Entry - user: {user_id}, candidates: {len(candidate_ids)}")

        try:
            day = self._today()
            already = self.store.get_marks(user_id, day)
            free = [cid for cid in candidate_ids if cid in already]
            new = list(dict.fromkeys(cid for cid in candidate_ids if cid not in already))
            current = self.store.get_count(user_id, day)

            if current >= self.daily_limit:
                self.logger.info(f"admit: Limit reached - user: {user_id}, count: {current}/{self.daily_limit}")
                return AdmissionResult(
                    admitted=free,
                    counted_new=[],
                    limit_exceeded=True,
                    viewed_today=current,
                    remaining=0,
                    truncated=bool(new),
                )

            if not new:
                self.logger.info(f"admit: Success (all free) - user: {user_id}, free: {len(free)}")
                return AdmissionResult(
                    admitted=free,
                    viewed_today=current,
                    remaining=self.daily_limit - current,
                )

            # The store re-checks marks and capacity under its own lock
            charge = self.store.charge(user_id, day, new, self.daily_limit)
            free_now = already.union(charge.already_marked)
            charged = set(charge.charged)
            admitted = [cid for cid in candidate_ids if cid in free_now or cid in charged]
            still_new = [cid for cid in new if cid not in free_now]
            remaining = self.remaining_after(charge.count)

            result = AdmissionResult(
                admitted=admitted,
                counted_new=charge.charged,
                limit_exceeded=not charge.charged and bool(still_new) and remaining == 0,
                viewed_today=charge.count,
                remaining=remaining,
                truncated=len(charge.charged) < len(still_new),
            )
            self.logger.info(
                f"admit: Success - user: {user_id}, free: {len(admitted) - len(charge.charged)}, "
                f"charged: {len(charge.charged)}, dropped: {len(still_new) - len(charge.charged)}, "
                f"count: {charge.count}/{self.daily_limit}"
            )
            return result
        except Exception as e:
            self.logger.error(f"admit: Failure - user: {user_id}, error: {e}")
            raise

    def get_viewed_today(self, user_id: str) -> int:
        return self.store.get_count(user_id, self._today())

    def remaining_after(self, viewed: int) -> int:
        return max(0, self.daily_limit - viewed)

    def get_remaining(self, user_id: str) -> int:
        return self.remaining_after(self.get_viewed_today(user_id))

    def reset(self, user_id: str):
        """Restore the full quota for the rest of today"""
        self.logger.info(f"reset: Entry - user: {user_id}")

        try:
            self.store.reset(user_id, self._today())
            self.logger.info(f"reset: Success - user: {user_id}")
        except Exception as e:
            self.logger.error(f"reset: Failure - user: {user_id}, error: {e}")
            raise
