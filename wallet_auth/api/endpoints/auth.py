import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from redis.exceptions import RedisError

from wallet_auth.core.challenge import build_challenge_message
from wallet_auth.core.dependencies import get_auth_orchestrator
from wallet_auth.core.eth_auth import is_valid_address
from wallet_auth.core.results import FailureKind, RequestContext, VerificationFailure
from wallet_auth.services.auth_orchestrator import AuthOrchestrator
from wallet_auth.services.nonce_manager import NonceManager, get_nonce_manager
import wallet_auth.schemas.auth as schemas

logger = logging.getLogger(__name__)

router = APIRouter()
group_tags: List[str] = ["Auth"]

FAILURE_STATUS = {
    FailureKind.MISSING_FIELD: status.HTTP_400_BAD_REQUEST,
    FailureKind.NONCE_EXTRACTION_FAILED: status.HTTP_400_BAD_REQUEST,
    FailureKind.INVALID_NONCE: status.HTTP_401_UNAUTHORIZED,
    FailureKind.SIGNATURE_INVALID: status.HTTP_401_UNAUTHORIZED,
    FailureKind.IDENTITY_MISMATCH: status.HTTP_401_UNAUTHORIZED,
    FailureKind.INTERNAL_COLLABORATOR_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _raise_for_failure(outcome: VerificationFailure) -> None:
    raise HTTPException(
        status_code=FAILURE_STATUS.get(outcome.kind, status.HTTP_401_UNAUTHORIZED),
        detail=schemas.ErrorDetail(code=outcome.kind.value, message=outcome.detail).model_dump(),
    )


@router.get(
    "/nonce",
    tags=group_tags,
    response_model=schemas.NonceResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_nonce(
    address: Optional[str] = Query(default=None, description="Optional wallet address to bind the nonce to"),
    nonce_manager: NonceManager = Depends(get_nonce_manager),
) -> schemas.NonceResponse:
    """Generate and store a nonce, bound to the wallet address when one is given."""
    address = address.strip() if address else None
    if address and not is_valid_address(address):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=schemas.ErrorDetail(code="INVALID_ADDRESS", message="Address is not a valid wallet address").model_dump(),
        )

    try:
        nonce = nonce_manager.issue(address)
    except RedisError as e:
        logger.exception("nonce store unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=schemas.ErrorDetail(
                code=FailureKind.INTERNAL_COLLABORATOR_ERROR.value,
                message="Service temporarily unavailable",
            ).model_dump(),
        )

    return schemas.NonceResponse(
        nonce=nonce,
        bind_address=address.lower() if address else None,
        message=build_challenge_message(nonce, address),
    )


@router.post(
    "/verify",
    tags=group_tags,
    response_model=schemas.AuthResponse,
)
@router.post(
    "/simple-verify",
    tags=group_tags,
    response_model=schemas.AuthResponse,
    include_in_schema=False,
)
def verify_wallet(
    body: schemas.VerifyRequest,
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_auth_orchestrator),
) -> schemas.AuthResponse:
    """Verify a signed challenge message and return an access token."""
    context = RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    outcome = orchestrator.verify(body.message, body.signature, body.address, context)
    if isinstance(outcome, VerificationFailure):
        logger.info("verification failed: %s", outcome.kind.value)
        _raise_for_failure(outcome)

    return schemas.AuthResponse(
        access_token=outcome.session_token,
        address=outcome.identity,
        user_id=outcome.user_id,
    )
