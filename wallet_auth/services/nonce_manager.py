"""
Issue and consume one-time challenge nonces.

A nonce record is stored as JSON under the nonce value:
    {"bound_identity": "0xabc..." | null, "issued_at": 1700000000.0, "expires_at": 1700000300.0}

consume() relies on the store's atomic get_and_delete, so a nonce is handed out
to at most one caller. Under the "retain" policy it uses get_and_delete_if
instead, which checks the binding and deletes in the same atomic step.
Expiry is checked again on the record itself so a store that has not purged an
old entry still cannot serve it.
"""

import json
import logging
import secrets
import time
from threading import Lock
from typing import Any, Callable, Dict, Optional

from wallet_auth.core.config import settings
from wallet_auth.core.eth_auth import normalize_address
from wallet_auth.core.nonce_store import NonceStore, build_nonce_store
from wallet_auth.core.results import NonceError

logger = logging.getLogger(__name__)

NONCE_NUM_BYTES = 32  # 32 bytes = 64 hex characters

MISMATCH_POLICY_CONSUME = "consume"
MISMATCH_POLICY_RETAIN = "retain"


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce for wallet authentication.

    Returns:
        Hex-encoded random string (e.g., "a1b2c3d4...")
    """
    if num_bytes <= 0:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def _short(nonce: str) -> str:
    return nonce[:8] + "..."


class NonceManager:
    def __init__(
        self,
        store: NonceStore,
        ttl_seconds: int = 300,
        mismatch_policy: str = MISMATCH_POLICY_CONSUME,
        clock: Callable[[], float] = time.time,
    ):
        if mismatch_policy not in (MISMATCH_POLICY_CONSUME, MISMATCH_POLICY_RETAIN):
            raise ValueError(f"Unknown binding mismatch policy: {mismatch_policy}")
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.mismatch_policy = mismatch_policy
        self._clock = clock

    def issue(self, bound_identity: Optional[str] = None) -> str:
        """Create a nonce, optionally bound to the address expected to sign it."""
        nonce = generate_nonce()
        bound = normalize_address(bound_identity) if bound_identity and bound_identity.strip() else None
        issued_at = self._clock()
        record = {
            "bound_identity": bound,
            "issued_at": issued_at,
            "expires_at": issued_at + self.ttl_seconds,
        }
        self.store.put(nonce, json.dumps(record).encode("utf-8"), self.ttl_seconds)

        if bound:
            logger.debug("issued nonce %s bound to %s", _short(nonce), bound)
        else:
            logger.debug("issued unbound nonce %s", _short(nonce))
        return nonce

    def consume(self, nonce: str, claimed_identity: str) -> Optional[NonceError]:
        """
        Take the nonce out of the store for claimed_identity.

        Returns None on success. After any call the nonce can no longer be used
        by claimed_identity. With the "retain" policy a caller whose identity
        does not match the binding never removes the record, so its bound
        owner can still use it until the original expiry.
        """
        if self.mismatch_policy == MISMATCH_POLICY_RETAIN:
            raw, _ = self.store.get_and_delete_if(
                nonce, lambda value: self._binding_allows(_decode_record(value), claimed_identity)
            )
        else:
            raw = self.store.get_and_delete(nonce)
        if raw is None:
            logger.info("nonce %s not found or already used", _short(nonce))
            return NonceError.NOT_FOUND_OR_EXPIRED

        record = _decode_record(raw)
        if record is None:
            logger.warning("dropping unreadable nonce record %s", _short(nonce))
            return NonceError.NOT_FOUND_OR_EXPIRED

        expires_at = float(record.get("expires_at") or 0)
        if expires_at <= self._clock():
            logger.info("nonce %s expired", _short(nonce))
            return NonceError.NOT_FOUND_OR_EXPIRED

        if not self._binding_allows(record, claimed_identity):
            logger.warning(
                "nonce %s bound to %s presented by %s",
                _short(nonce), record.get("bound_identity"), claimed_identity,
            )
            return NonceError.IDENTITY_MISMATCH

        return None

    @staticmethod
    def _binding_allows(record: Optional[Dict[str, Any]], claimed_identity: Optional[str]) -> bool:
        # unreadable records are taken so they get dropped
        if record is None:
            return True
        bound = record.get("bound_identity")
        return not bound or bound == normalize_address(claimed_identity or "")


def _decode_record(raw: bytes) -> Optional[Dict[str, Any]]:
    try:
        record = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return record if isinstance(record, dict) else None


_nonce_manager: Optional[NonceManager] = None
_nonce_manager_lock = Lock()


def get_nonce_manager() -> NonceManager:
    """Process-wide manager built from settings on first use"""
    global _nonce_manager
    if _nonce_manager is None:
        with _nonce_manager_lock:
            if _nonce_manager is None:
                _nonce_manager = NonceManager(
                    build_nonce_store(settings),
                    ttl_seconds=settings.NONCE_EXPIRY_SECONDS,
                    mismatch_policy=settings.NONCE_BINDING_MISMATCH_POLICY,
                )
    return _nonce_manager
