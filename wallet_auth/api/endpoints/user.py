from typing import List

from fastapi import APIRouter, Depends, status

from wallet_auth.core.dependencies import get_current_user
from wallet_auth.models.users import User
from wallet_auth.schemas.user import ProfileResponse

router = APIRouter()
group_tags: List[str] = ["user"]


@router.get(
    "/profile",
    tags=group_tags,
    response_model=ProfileResponse,
    status_code=status.HTTP_200_OK,
)
def get_profile(user: User = Depends(get_current_user)) -> ProfileResponse:
    """
    Profile of the signed-in wallet.

    Requires: Authorization: Bearer <token> from /auth/verify
    """
    return ProfileResponse.from_orm_row(user)
