# app/services/lock_service.py
import uuid

import redis

from app.utils.logging import get_logger
from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL, RECONCILE_LOCK_TTL_SECONDS

logger = get_logger(__name__)

#LUA porownaj i usun, atomowo
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje skrypt lua jako jedna nieprzerywalna operacje
#nie mozna wcisnac sie miedzy GET a DEL, wiec lock zwalnia tylko jego wlasciciel


class LockService:
    """
    -lock rekoncyliacji platnosci (jeden powrot z bramki naraz na payment_id)
    -zwalnianie locka
    -atomowosc przy pomocy lua
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(payment_id: str) -> str:
        return f"payment:{payment_id}:reconcile"

    @redis_retry()
    def acquire_payment_lock(self, payment_id: str, ttl: int = RECONCILE_LOCK_TTL_SECONDS) -> str | None:
        """Zwraca token wlasciciela albo None jesli ktos inny rekoncyliuje."""
        key = self._key(payment_id)
        token = uuid.uuid4().hex
        logger.info(f"Acquire lock {key}")
        #SET payment:X:reconcile <token> NX EX 30
        acquired = self.redis.set(name=key, value=token, nx=True, ex=ttl)
        return token if acquired else None

    @redis_retry()
    def release_payment_lock(self, payment_id: str, token: str) -> bool:
        key = self._key(payment_id)
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
