"""
Credit balance API route.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_credit_service, get_current_user
from app.core.auth import AuthenticatedUser
from app.services.credit_service import CreditService

router = APIRouter(prefix="/credits", tags=["credits"])


class CreditBalanceResponse(BaseModel):
    user_id: str
    credits: int


@router.get("", response_model=CreditBalanceResponse)
async def get_credits(
    user: AuthenticatedUser = Depends(get_current_user),
    credits: CreditService = Depends(get_credit_service),
) -> CreditBalanceResponse:
    """Current credit balance of the caller (404 without a profile)."""
    balance = await credits.get_balance(user.id)
    return CreditBalanceResponse(user_id=user.id, credits=balance)
