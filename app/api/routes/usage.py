from fastapi import APIRouter, Depends

from app.dependencies.auth import get_current_user_id
from app.dependencies.services import get_quota_ledger
from app.services.usage_tracker import QuotaLedger

router = APIRouter()


@router.get("/token-usage")
def get_token_usage(
    user_id: str = Depends(get_current_user_id),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    """Current quota snapshot for the caller."""
    return ledger.check_limit(user_id).to_dict()
