from typing import Sequence, Set
import redis
from redis.exceptions import RedisError
from app.core.exceptions import StorageUnavailableError
from app.services.quota_store import ChargeResult
import logging

logger = logging.getLogger(__name__)

# KEYS[1] counter, KEYS[2] marks set; ARGV[1] limit, ARGV[2] ttl seconds, ARGV[3..] ids
CHARGE_SCRIPT = """
local count = tonumber(redis.call('GET', KEYS[1]) or '0')
local limit = tonumber(ARGV[1])
local ttl = tonumber(ARGV[2])
local charged = {}
local already = {}
for i = 3, #ARGV do
    local contact_id = ARGV[i]
    if redis.call('SISMEMBER', KEYS[2], contact_id) == 1 then
        table.insert(already, contact_id)
    elseif count < limit then
        redis.call('SADD', KEYS[2], contact_id)
        count = count + 1
        table.insert(charged, contact_id)
    end
end
if #charged > 0 then
    redis.call('INCRBY', KEYS[1], #charged)
    if ttl > 0 then
        redis.call('EXPIRE', KEYS[1], ttl)
        redis.call('EXPIRE', KEYS[2], ttl)
    end
end
return {count, charged, already}
"""

# KEYS[1] counter, KEYS[2] marks set; ARGV[1] ttl seconds
RECONCILE_SCRIPT = """
local marks = redis.call('SCARD', KEYS[2])
local previous = tonumber(redis.call('GET', KEYS[1]) or '0')
if marks == 0 then
    redis.call('DEL', KEYS[1])
elseif marks ~= previous then
    redis.call('SET', KEYS[1], marks)
    local ttl = tonumber(ARGV[1])
    if ttl > 0 then
        redis.call('EXPIRE', KEYS[1], ttl)
    end
end
return {previous, marks}
"""


class RedisQuotaStore:
    """
    Redis quota store: a counter string and a marks set per (user_id, day).

    Both keys share a hash tag so they land on the same cluster slot, which
    lets charge() run as a single atomic Lua script.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int = 48 * 3600, key_prefix: str = "contact_views"):
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix
        self._charge = client.register_script(CHARGE_SCRIPT)
        self._reconcile = client.register_script(RECONCILE_SCRIPT)
        self.logger = logging.getLogger(__name__)

    def _keys(self, user_id: str, day: str):
        tag = f"{{{user_id}:{day}}}"
        return f"{self._key_prefix}:{tag}:count", f"{self._key_prefix}:{tag}:marks"

    def get_count(self, user_id: str, day: str) -> int:
        counter_key, _ = self._keys(user_id, day)
        try:
            value = self._client.get(counter_key)
            return int(value) if value is not None else 0
        except RedisError as e:
            self.logger.error(f"get_count: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('get_count', e) from e

    def get_marks(self, user_id: str, day: str) -> Set[str]:
        _, marks_key = self._keys(user_id, day)
        try:
            return {_decode(member) for member in self._client.smembers(marks_key)}
        except RedisError as e:
            self.logger.error(f"get_marks: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('get_marks', e) from e

    def add_marks(self, user_id: str, day: str, contact_ids: Sequence[str]) -> None:
        contact_ids = list(dict.fromkeys(contact_ids))
        if not contact_ids:
            return
        _, marks_key = self._keys(user_id, day)
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.sadd(marks_key, *contact_ids)
            if self._ttl_seconds > 0:
                pipe.expire(marks_key, self._ttl_seconds)
            pipe.execute()
        except RedisError as e:
            self.logger.error(f"add_marks: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('add_marks', e) from e

    def increment_count(self, user_id: str, day: str, delta: int) -> int:
        counter_key, _ = self._keys(user_id, day)
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.incrby(counter_key, delta)
            if self._ttl_seconds > 0:
                pipe.expire(counter_key, self._ttl_seconds)
            new_count = pipe.execute()[0]
            self.logger.debug(f"increment_count: Success - user: {user_id}, day: {day}, count: {new_count}")
            return int(new_count)
        except RedisError as e:
            self.logger.error(f"increment_count: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('increment_count', e) from e

    def reset(self, user_id: str, day: str) -> None:
        self.logger.info(f"reset: Entry - user: {user_id}, day: {day}")
        try:
            deleted = self._client.delete(*self._keys(user_id, day))
            self.logger.info(f"reset: Success - user: {user_id}, day: {day}, keys deleted: {deleted}")
        except RedisError as e:
            self.logger.error(f"reset: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('reset', e) from e

    def charge(self, user_id: str, day: str, contact_ids: Sequence[str], limit: int) -> ChargeResult:
        contact_ids = list(dict.fromkeys(contact_ids))
        self.logger.info(f"charge: Entry - user: {user_id}, day: {day}, candidates: {len(contact_ids)}")
        try:
            count, charged, already = self._charge(
                keys=list(self._keys(user_id, day)),
                args=[limit, self._ttl_seconds, *contact_ids],
            )
            result = ChargeResult(
                charged=[_decode(cid) for cid in charged],
                already_marked=[_decode(cid) for cid in already],
                count=int(count),
            )
            self.logger.info(
                f"charge: Success - user: {user_id}, day: {day}, charged: {len(result.charged)}, count: {result.count}/{limit}"
            )
            return result
        except RedisError as e:
            self.logger.error(f"charge: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('charge', e) from e

    def reconcile(self, user_id: str, day: str) -> int:
        self.logger.info(f"reconcile: Entry - user: {user_id}, day: {day}")
        try:
            previous, marks = self._reconcile(keys=list(self._keys(user_id, day)), args=[self._ttl_seconds])
            previous, marks = int(previous), int(marks)
            if previous != marks:
                self.logger.warning(f"reconcile: Repaired - user: {user_id}, day: {day}, count: {previous} -> {marks}")
            else:
                self.logger.info(f"reconcile: Success - user: {user_id}, day: {day}, count: {marks}")
            return marks
        except RedisError as e:
            self.logger.error(f"reconcile: Failure - user: {user_id}, day: {day}, error: {e}")
            raise StorageUnavailableError('reconcile', e) from e


def _decode(value) -> str:
    return value.decode('utf-8') if isinstance(value, bytes) else value
