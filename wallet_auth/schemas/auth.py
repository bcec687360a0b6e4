from typing import Optional

from pydantic import BaseModel, Field

from wallet_auth.schemas.my_base_model import CustomBaseModel


class NonceResponse(CustomBaseModel):
    """Response model for nonce generation - output"""

    nonce: str = ""
    bind_address: Optional[str] = None
    message: str = ""


class VerifyRequest(BaseModel):
    """Request model for wallet verification - input validation

    Fields are optional here so that a missing value is reported with the
    MISSING_FIELD code instead of a generic validation error.
    """

    message: Optional[str] = Field(default=None, description="Signed challenge message")
    signature: Optional[str] = Field(default=None, description="0x-prefixed personal_sign signature")
    address: Optional[str] = Field(default=None, description="Wallet address claimed by the signer")


class AuthResponse(CustomBaseModel):
    """Response model for authentication - output"""

    access_token: str
    token_type: str = "bearer"
    address: str
    user_id: str


class ErrorDetail(CustomBaseModel):
    """Body of the detail field on a failed verification"""

    code: str
    message: str
