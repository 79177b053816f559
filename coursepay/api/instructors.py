from typing import List

from fastapi import APIRouter, Depends, Query

from coursepay.config import settings
from coursepay.deps import get_admin_service, get_wallet_ledger
from coursepay.money import to_minor_units
from coursepay.schemas import TransactionOut, WalletOut, WithdrawIn
from coursepay.security import CurrentUser, get_current_user, require_owner, require_self_or_admin
from coursepay.services.admin import AdminReviewService
from coursepay.services.wallets import WalletLedger

router = APIRouter(prefix="/instructors", tags=["wallets"])


@router.get("/{instructor_id}/wallet", response_model=WalletOut)
def get_wallet(
    instructor_id: str,
    user: CurrentUser = Depends(get_current_user),
    wallets: WalletLedger = Depends(get_wallet_ledger),
):
    require_self_or_admin(instructor_id, user)
    return WalletOut.model_validate(wallets.get_wallet(instructor_id))


@router.get("/{instructor_id}/transactions", response_model=List[TransactionOut])
def get_transactions(
    instructor_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    wallets: WalletLedger = Depends(get_wallet_ledger),
    reporting: AdminReviewService = Depends(get_admin_service),
):
    require_self_or_admin(instructor_id, user)
    rows = wallets.list_transactions(instructor_id, limit=limit, offset=offset)
    return [TransactionOut.from_transaction(t, reporting) for t in rows]


@router.post("/{instructor_id}/wallet/withdraw", response_model=TransactionOut, status_code=201)
def request_withdrawal(
    instructor_id: str,
    payload: WithdrawIn,
    user: CurrentUser = Depends(get_current_user),
    wallets: WalletLedger = Depends(get_wallet_ledger),
    reporting: AdminReviewService = Depends(get_admin_service),
):
    # admins review withdrawals, they do not request them
    require_owner(instructor_id, user)
    txn = wallets.request_withdrawal(
        instructor_id, to_minor_units(payload.amount, settings.currency_exponent)
    )
    return TransactionOut.from_transaction(txn, reporting)
