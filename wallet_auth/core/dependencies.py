"""
FastAPI Authentication Dependencies
This module provides FastAPI dependency functions that can be injected into route handlers
to automatically extract and validate JWT tokens from the Authorization header, and to
build the per-request auth orchestrator.
Usage in endpoints:
    @router.get("/protected")
    def protected_route(user: User = Depends(get_current_user)):
        # user is loaded from the sub claim and checked against the address claim
        return {"user": user.address}
Flow:
1. Client sends request with Authorization: Bearer <token> header
2. FastAPI calls get_current_user() dependency
3. _extract_token() extracts token from header
4. verify_token() validates the JWT (from jwt_utils.py)
5. The user is loaded and its stored address compared with the token address
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from wallet_auth.core.jwt_utils import verify_token
from wallet_auth.db.session import get_db
from wallet_auth.models.users import User
from wallet_auth.services.auth_orchestrator import AuthOrchestrator
from wallet_auth.services.nonce_manager import NonceManager, get_nonce_manager
from wallet_auth.services.user_store import UserStore


def _extract_token(authorization: Optional[str]) -> Dict[str, Any]:
    """
    Extract JWT token from Authorization header.
    Supports both "Bearer <token>" and plain token formats.
    Args:
        authorization: The Authorization header value (e.g., "Bearer eyJ...")
    Returns:
        The decoded token payload
    Raises:
        HTTPException 401: If Authorization header is missing or invalid
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
        )

    authorization = authorization.strip()
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    else:
        token = authorization
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        )

    return verify_token(token)


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> User:
    """
    returning the signed-in user.
    """
    payload = _extract_token(authorization)
    user = UserStore(db).find_by_id(payload["sub"])
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    if str(user.address).lower() != payload["address"].lower():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    return user


def get_auth_orchestrator(
    db: Session = Depends(get_db),
    nonce_manager: NonceManager = Depends(get_nonce_manager),
) -> AuthOrchestrator:
    return AuthOrchestrator(nonce_manager=nonce_manager, user_store=UserStore(db))
