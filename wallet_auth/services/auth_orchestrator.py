"""
Wallet sign-in flow.

verify() runs these steps in order and stops at the first failure:

    parse nonce -> consume nonce -> recover signer -> compare address
        -> match:    upsert user, history row, login counters, JWT
        -> mismatch: history row for a known user, no user created

Nothing is retried. A nonce consumed before a later failure stays consumed,
so a signed message can never be replayed.
"""

import logging
from typing import Callable, Optional, Tuple, Union

import jwt
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from wallet_auth.core.challenge import extract_nonce
from wallet_auth.core.eth_auth import normalize_address, recover_identity
from wallet_auth.core.jwt_utils import create_access_token
from wallet_auth.core.results import (
    FailureKind,
    ParseError,
    RequestContext,
    SignatureError,
    VerificationFailure,
    VerificationOutcome,
    VerificationSuccess,
)
from wallet_auth.services.nonce_manager import NonceManager
from wallet_auth.services.user_store import UserStore

logger = logging.getLogger(__name__)

IDENTITY_MISMATCH_REASON = "identity mismatch"

# failures of stores, database and token signing
COLLABORATOR_ERRORS = (SQLAlchemyError, RedisError, jwt.PyJWTError, TimeoutError, OSError)

NonceParser = Callable[[str], Tuple[Optional[str], Optional[ParseError]]]
SignatureRecoverer = Callable[[str, Union[str, bytes]], Tuple[Optional[str], Optional[SignatureError]]]
TokenSigner = Callable[[str, str], str]


class AuthOrchestrator:
    def __init__(
        self,
        nonce_manager: NonceManager,
        user_store: UserStore,
        token_signer: TokenSigner = create_access_token,
        parse_nonce: NonceParser = extract_nonce,
        recover_signer: SignatureRecoverer = recover_identity,
    ):
        self.nonce_manager = nonce_manager
        self.user_store = user_store
        self.token_signer = token_signer
        self.parse_nonce = parse_nonce
        self.recover_signer = recover_signer

    def verify(
        self,
        message: Optional[str],
        signature: Optional[Union[str, bytes]],
        claimed_identity: Optional[str],
        context: Optional[RequestContext] = None,
    ) -> VerificationOutcome:
        context = context or RequestContext()

        for name, value in (
            ("message", message),
            ("signature", signature),
            ("address", claimed_identity),
        ):
            if value is None or (isinstance(value, str) and not value.strip()):
                logger.warning("verify request without %s", name)
                return VerificationFailure(FailureKind.MISSING_FIELD, f"{name} is required")

        try:
            return self._verify(message, signature, claimed_identity, context)
        except COLLABORATOR_ERRORS as e:
            logger.exception("verify for %s failed in a collaborator: %s", claimed_identity, e)
            self.user_store.rollback()
            return VerificationFailure(
                FailureKind.INTERNAL_COLLABORATOR_ERROR, "Service temporarily unavailable"
            )

    def _verify(
        self,
        message: str,
        signature: Union[str, bytes],
        claimed_identity: str,
        context: RequestContext,
    ) -> VerificationOutcome:
        # Step 1: locate the nonce inside the signed text
        nonce, parse_error = self.parse_nonce(message)
        if parse_error is not None or nonce is None:
            logger.info("no nonce marker in message from %s", claimed_identity)
            return VerificationFailure(
                FailureKind.NONCE_EXTRACTION_FAILED, "Message does not contain a nonce"
            )

        # Step 2: burn it; the reason stays in the log only
        nonce_error = self.nonce_manager.consume(nonce, claimed_identity)
        if nonce_error is not None:
            logger.warning("rejected nonce for %s: %s", claimed_identity, nonce_error.value)
            return VerificationFailure(FailureKind.INVALID_NONCE, "Invalid or expired nonce")

        # Step 3: who actually signed
        recovered, signature_error = self.recover_signer(message, signature)
        if signature_error is not None or recovered is None:
            logger.warning("malformed signature presented for %s", claimed_identity)
            return VerificationFailure(FailureKind.SIGNATURE_INVALID, "Invalid signature")

        # Step 4: compare with the claim
        address = normalize_address(claimed_identity)
        if recovered != address:
            logger.warning("signer %s does not match claimed %s", recovered, address)
            known_user = self.user_store.find_by_identity(address)
            if known_user is not None:
                self.user_store.record_login(
                    known_user.id,
                    success=False,
                    ip_address=context.ip_address,
                    user_agent=context.user_agent,
                    failure_reason=IDENTITY_MISMATCH_REASON,
                )
            return VerificationFailure(FailureKind.IDENTITY_MISMATCH, "Address mismatch")

        user = self.user_store.upsert(address)
        user_id = str(user.id)
        self.user_store.record_login(
            user_id,
            success=True,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        token = self.token_signer(user_id, address)

        logger.info("wallet %s signed in as user %s", address, user_id)
        return VerificationSuccess(identity=address, session_token=token, user_id=user_id)
