# cart_service/services/cart_cache.py
import redis
from redis.exceptions import RedisError

from cart_service.utils.retry import redis_retry
from cart_service.utils.settings import CART_CACHE_TTL_SECONDS, REDIS_URL
from cart_service.utils.logging import get_logger

logger = get_logger(__name__)


class CartCache:
    """
    Read-through cache widoku koszyka (JSON odpowiedzi GET /carts/{id}).
    -klucz cart:{id}, wygasa po ttl (nie trzeba recznie czyscic)
    -kazda zmiana koszyka robi invalidate
    -blad redisa nie blokuje requestu, wtedy idziemy prosto do bazy
    """

    def __init__(self, url: str | None = None, ttl: int | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl = ttl or CART_CACHE_TTL_SECONDS

    @staticmethod
    def _key(cart_id: str) -> str:
        return f"cart:{cart_id}"

    def get(self, cart_id: str) -> str | None:
        try:
            return self._get(self._key(cart_id))
        except RedisError as e:
            logger.warning(f"Cart cache read failed for {cart_id}: {e}")
            return None

    def put(self, cart_id: str, payload: str) -> None:
        try:
            self._set(self._key(cart_id), payload)
        except RedisError as e:
            logger.warning(f"Cart cache write failed for {cart_id}: {e}")

    def invalidate(self, *cart_ids: str) -> None:
        keys = [self._key(c) for c in cart_ids if c]
        if not keys:
            return
        try:
            self._delete(*keys)
        except RedisError as e:
            logger.warning(f"Cart cache invalidation failed for {cart_ids}: {e}")

    @redis_retry()
    def _get(self, key: str) -> str | None:
        return self.redis.get(key)

    @redis_retry()
    def _set(self, key: str, payload: str) -> None:
        #SET cart:<id> "<json>" EX ttl
        self.redis.set(name=key, value=payload, ex=self.ttl)

    @redis_retry()
    def _delete(self, *keys: str) -> None:
        self.redis.delete(*keys)
