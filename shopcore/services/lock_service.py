# shopcore/services/lock_service.py
import uuid

import redis
from redis.exceptions import RedisError

from shopcore.domain.errors import CheckoutInProgressError, StorageUnavailableError
from shopcore.utils.settings import REDIS_URL, CHECKOUT_LOCK_TTL_SECONDS
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

#compare and delete in one step, only the holder's token can release
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived checkout locks per product.
    Two checkouts touching the same product serialize their
    re-validate/commit window; the TTL bounds how long a crashed holder blocks.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(product_id: str) -> str:
        return f"checkout:product:{product_id}:lock"

    def acquire_product_lock(self, product_id: str, token: str, ttl: int = CHECKOUT_LOCK_TTL_SECONDS) -> bool:
        key = self._key(product_id)
        logger.info(f"Acquire lock {key} for {token}")
        try:
            return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))
        except RedisError as e:
            raise StorageUnavailableError(f"Lock store unavailable: {e}") from e

    def release_product_lock(self, product_id: str, token: str) -> bool:
        key = self._key(product_id)
        logger.info(f"Release lock {key} for {token}")
        try:
            return bool(self.redis.eval(_RELEASE_LUA, 1, key, token))
        except RedisError as e:
            #the TTL frees it eventually
            logger.warning(f"Failed to release {key}: {e}")
            return False

    def acquire_many(self, product_ids, ttl: int = CHECKOUT_LOCK_TTL_SECONDS) -> "HeldLocks":
        """Lock every product (sorted, so concurrent checkouts can't deadlock) or none."""
        token = uuid.uuid4().hex
        held = HeldLocks(self, token)
        try:
            for product_id in sorted(set(product_ids)):
                if not self.acquire_product_lock(product_id, token, ttl):
                    raise CheckoutInProgressError(product_id)
                held.product_ids.append(product_id)
        except Exception:
            held.release()
            raise
        return held


class HeldLocks:
    def __init__(self, service: LockService, token: str):
        self.service = service
        self.token = token
        self.product_ids: list[str] = []

    def release(self) -> None:
        for product_id in reversed(self.product_ids):
            self.service.release_product_lock(product_id, self.token)
        self.product_ids = []

    def __enter__(self) -> "HeldLocks":
        return self

    def __exit__(self, *exc) -> None:
        self.release()
