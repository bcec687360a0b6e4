from datetime import datetime
from typing import Any, Dict, Optional

from wallet_auth.schemas.my_base_model import CustomBaseModel


class ProfileResponse(CustomBaseModel):
    """Response model for user profile"""

    id: str = ""
    address: str = ""
    chain: str = "ethereum"
    username: Optional[str] = None
    avatar: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = False
    meta_data: Optional[Dict[str, Any]] = None
    login_count: int = 0
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
