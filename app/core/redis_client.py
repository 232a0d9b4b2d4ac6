import logging
import redis
from app.core.config import settings

logger = logging.getLogger(__name__)


def create_redis_client(redis_url: str = None, redis_password: str = None) -> redis.Redis:
    """
    Build a Redis client from a URL.

    settings.redis_password takes precedence over a password embedded in the URL,
    and an empty string is treated as no password.
    """
    redis_url = redis_url or settings.redis_url
    redis_password = redis_password if redis_password is not None else settings.redis_password

    client_kwargs = {
        'decode_responses': True,
        'socket_connect_timeout': 2,
        'socket_timeout': 2,
        'retry_on_timeout': False,
    }
    if redis_password:
        client_kwargs['password'] = redis_password

    client = redis.from_url(redis_url, **client_kwargs)
    kwargs = client.connection_pool.connection_kwargs
    logger.info(
        f"create_redis_client: host={kwargs.get('host', 'localhost')}, "
        f"port={kwargs.get('port', 6379)}, db={kwargs.get('db', 0)}, "
        f"password={'***' if kwargs.get('password') else 'None'}"
    )
    return client
