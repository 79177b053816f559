from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from coursepay.deps import get_admin_service, get_notifier
from coursepay.models import TransactionStatus, TransactionType
from coursepay.notifications import Notifier, send_quietly
from coursepay.schemas import DashboardOut, ReviewIn, ReviewOut, TransactionOut
from coursepay.security import CurrentUser, require_admin
from coursepay.services.admin import AdminReviewService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/transactions", response_model=List[TransactionOut])
def list_transactions(
    type: Optional[TransactionType] = None,
    status: Optional[TransactionStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _: CurrentUser = Depends(require_admin),
    admin: AdminReviewService = Depends(get_admin_service),
):
    rows = admin.list_transactions(type_=type, status=status, limit=limit, offset=offset)
    return [TransactionOut.from_transaction(t, admin) for t in rows]


@router.get("/transactions/{txn_id}", response_model=TransactionOut)
def get_transaction(
    txn_id: int,
    _: CurrentUser = Depends(require_admin),
    admin: AdminReviewService = Depends(get_admin_service),
):
    return TransactionOut.from_transaction(admin.get_transaction(txn_id), admin)


@router.patch("/transactions/{txn_id}/status", response_model=ReviewOut)
def review_transaction(
    txn_id: int,
    payload: ReviewIn,
    background: BackgroundTasks,
    user: CurrentUser = Depends(require_admin),
    admin: AdminReviewService = Depends(get_admin_service),
    notifier: Notifier = Depends(get_notifier),
):
    result = admin.review(txn_id, payload.status, admin_id=user.id)
    txn = result.transaction
    background.add_task(
        send_quietly,
        notifier,
        result.instructor_email,
        f"Transaction {txn.id} {txn.status.value.lower()}",
        f"Your {txn.type.value.lower()} of {txn.amount} was {txn.status.value.lower()}. "
        f"Wallet balance: {result.balance}.",
    )
    return ReviewOut(
        transaction=TransactionOut.from_transaction(txn, admin),
        wallet_balance=result.balance,
    )


@router.get("/dashboard-overview", response_model=DashboardOut)
def dashboard_overview(
    _: CurrentUser = Depends(require_admin),
    admin: AdminReviewService = Depends(get_admin_service),
):
    return DashboardOut.model_validate(admin.dashboard_overview())
