from __future__ import annotations

# nonce storage backends
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from redis import Connection, ConnectionPool, Redis, SSLConnection

from wallet_auth.core.config import Settings, settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Predicate = Callable[[bytes], bool]


class NonceStore:
    """
    Key-value store for issued nonces with absolute expiry.

    Every backend must make get_and_delete a single atomic step. Two requests
    racing on the same key must never both receive the value.
    """

    def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        raise NotImplementedError

    def get_and_delete(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def get_and_delete_if(self, key: str, predicate: Predicate) -> Tuple[Optional[bytes], bool]:
        """
        Read the value and delete it only when predicate(value) is true, as one step.

        Returns (value, deleted). (None, False) when the key is absent or expired.
        An entry the predicate refuses is left untouched with its expiry.
        """
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def purge_expired(self) -> int:
        return 0

    def ping(self) -> bool:
        return True


class MemoryNonceStore(NonceStore):
    """In-process store: a dict guarded by a lock, with an optional sweep thread"""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        expires_at = self._clock() + ttl_seconds
        with self._lock:
            self._entries[key] = (value, expires_at)

    def get_and_delete(self, key: str) -> Optional[bytes]:
        now = self._clock()
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= now:
            return None
        return value

    def get_and_delete_if(self, key: str, predicate: Predicate) -> Tuple[Optional[bytes], bool]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            value, expires_at = entry
            if expires_at <= now:
                del self._entries[key]
                return None, False
            if not predicate(value):
                return value, False
            del self._entries[key]
        return value, True

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired_keys = [k for k, (_, exp) in self._entries.items() if exp <= now]
            for k in expired_keys:
                self._entries.pop(k)
        return len(expired_keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def start_sweeper(self, interval_seconds: float) -> None:
        """Purge expired entries every interval_seconds on a daemon thread."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()

        def _run() -> None:
            while not self._stop_event.wait(interval_seconds):
                removed = self.purge_expired()
                if removed:
                    logger.debug("nonce sweep removed %d expired entries", removed)

        self._sweeper = threading.Thread(target=_run, name="nonce-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None


class RedisNonceStore(NonceStore):
    """Redis backed store; expiry and atomic removal are native Redis commands"""

    def __init__(self, pool: ConnectionPool, key_prefix: str = "auth:nonce:"):
        self.pool = pool
        self.key_prefix = key_prefix

    @classmethod
    def from_settings(cls, config: Settings) -> "RedisNonceStore":
        pool = ConnectionPool(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            socket_connect_timeout=config.COLLABORATOR_TIMEOUT_SECONDS,
            socket_timeout=config.COLLABORATOR_TIMEOUT_SECONDS,
            retry_on_timeout=False,
            max_connections=config.REDIS_MAX_CONNECTIONS,
            connection_class=SSLConnection if config.REDIS_SSL else Connection
        )
        return cls(pool, key_prefix=config.NONCE_KEY_PREFIX)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _client(self) -> Redis:
        return Redis(connection_pool=self.pool)

    def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        rc = self._client()
        try:
            rc.set(self._key(key), value, ex=max(int(ttl_seconds), 1))
        finally:
            rc.close()

    def get_and_delete(self, key: str) -> Optional[bytes]:
        rc = self._client()
        try:
            # GETDEL needs Redis >= 6.2
            result = rc.getdel(self._key(key))
        finally:
            rc.close()
        if result is None or result == b'':
            return None
        return result

    def get_and_delete_if(self, key: str, predicate: Predicate) -> Tuple[Optional[bytes], bool]:
        redis_key = self._key(key)

        # WATCH/MULTI: a concurrent change to the key aborts EXEC and the
        # transaction helper runs _take again
        def _take(pipe) -> Tuple[Optional[bytes], bool]:
            value = pipe.get(redis_key)
            if value is None or value == b'':
                return None, False
            if not predicate(value):
                return value, False
            pipe.multi()
            pipe.delete(redis_key)
            return value, True

        rc = self._client()
        try:
            return rc.transaction(_take, redis_key, value_from_callable=True)
        finally:
            rc.close()

    def delete(self, key: str) -> None:
        rc = self._client()
        try:
            rc.delete(self._key(key))
        finally:
            rc.close()

    def ping(self) -> bool:
        rc = self._client()
        try:
            return bool(rc.ping())
        finally:
            rc.close()


def build_nonce_store(config: Settings = settings) -> NonceStore:
    """Pick the nonce backend from NONCE_STORE"""
    backend = (config.NONCE_STORE or "memory").strip().lower()
    if backend == "redis":
        if config.REDIS_HOST is None or config.REDIS_HOST.strip() == "":
            raise RuntimeError("NONCE_STORE=redis requires REDIS_HOST")
        logger.info("using redis nonce store at %s:%s", config.REDIS_HOST, config.REDIS_PORT)
        return RedisNonceStore.from_settings(config)
    if backend != "memory":
        raise ValueError(f"Unknown NONCE_STORE: {config.NONCE_STORE}")
    logger.info("using in-memory nonce store")
    return MemoryNonceStore()
