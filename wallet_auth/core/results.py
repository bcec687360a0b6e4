"""
Result and error types for the challenge-response flow.

Core operations never raise for expected failures. They return one of the
values below and the endpoint layer decides the HTTP status.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class NonceError(str, Enum):
    NOT_FOUND_OR_EXPIRED = "not_found_or_expired"
    IDENTITY_MISMATCH = "identity_mismatch"


class ParseError(str, Enum):
    NONCE_MARKER_NOT_FOUND = "nonce_marker_not_found"


class SignatureError(str, Enum):
    MALFORMED_SIGNATURE = "malformed_signature"


class FailureKind(str, Enum):
    MISSING_FIELD = "MISSING_FIELD"
    NONCE_EXTRACTION_FAILED = "NONCE_EXTRACTION_FAILED"
    INVALID_NONCE = "INVALID_NONCE"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    IDENTITY_MISMATCH = "IDENTITY_MISMATCH"
    INTERNAL_COLLABORATOR_ERROR = "INTERNAL_COLLABORATOR_ERROR"


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class VerificationSuccess:
    identity: str
    session_token: str
    user_id: str
    success: bool = True


@dataclass(frozen=True)
class VerificationFailure:
    kind: FailureKind
    detail: str
    success: bool = False


VerificationOutcome = Union[VerificationSuccess, VerificationFailure]
