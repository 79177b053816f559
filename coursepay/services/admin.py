# coursepay/services/admin.py
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

import structlog

from coursepay.errors import ConflictError, NotFoundError, ValidationError
from coursepay.metrics import review_conflicts, withdrawal_reviews
from coursepay.models import LedgerTransaction, TransactionStatus, TransactionType
from coursepay.money import COMMISSION_RATE, gross_from_net, round_half_up
from coursepay.repositories import UnitOfWork

logger = structlog.get_logger(__name__)

REVIEW_DECISIONS = (TransactionStatus.APPROVED, TransactionStatus.REJECTED)


@dataclass(frozen=True)
class ReviewResult:
    transaction: LedgerTransaction
    instructor_id: str
    instructor_email: Optional[str]
    balance: int


@dataclass(frozen=True)
class DashboardOverview:
    net_revenue: int
    gross_revenue: int
    commission: int
    monthly_net_revenue: int
    monthly_gross_revenue: int
    revenue_transactions: int
    average_transaction: int
    total_transactions: int
    pending_withdrawals: int
    pending_withdrawal_amount: int


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AdminReviewService:
    def __init__(self, uow_factory: Callable[[], UnitOfWork], commission_rate: Decimal = COMMISSION_RATE):
        self.uow_factory = uow_factory
        self.commission_rate = commission_rate

    def list_transactions(
        self,
        type_: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LedgerTransaction]:
        with self.uow_factory() as uow:
            return uow.ledger.list(type_=type_, status=status, limit=limit, offset=offset)

    def get_transaction(self, txn_id: int) -> LedgerTransaction:
        with self.uow_factory() as uow:
            txn = uow.ledger.get(txn_id)
            if not txn:
                raise NotFoundError("Transaction not found")
            return txn

    def review(self, txn_id: int, decision: TransactionStatus, admin_id: str) -> ReviewResult:
        """
        PENDING -> APPROVED | REJECTED, once. The status flip is a conditional
        UPDATE on status = PENDING, so two racing reviews cannot both win.
        Rejecting a WITHDRAWAL returns the reserved amount to the wallet;
        approving it keeps the funds out (they left at request time).
        """
        if decision not in REVIEW_DECISIONS:
            raise ValidationError("Status must be APPROVED or REJECTED")

        with self.uow_factory() as uow:
            txn = uow.ledger.get(txn_id)
            if not txn:
                raise NotFoundError("Transaction not found")
            if not uow.ledger.transition(txn_id, decision, reviewed_by=admin_id, reviewed_at=_now()):
                review_conflicts.inc()
                raise ConflictError(f"Invalid transition: transaction is already {txn.status.value}")

            if txn.type == TransactionType.WITHDRAWAL and decision == TransactionStatus.REJECTED:
                uow.wallets.credit(txn.wallet_id, txn.amount)

            uow.refresh(txn)
            wallet = uow.wallets.get(txn.wallet_id)
            uow.refresh(wallet)
            instructor = uow.catalog.get_instructor(wallet.instructor_id)
            result = ReviewResult(
                transaction=txn,
                instructor_id=wallet.instructor_id,
                instructor_email=instructor.email if instructor else None,
                balance=int(wallet.balance),
            )
            uow.commit()

        withdrawal_reviews.labels(decision.value.lower()).inc()
        logger.info(
            "transaction_reviewed",
            transaction_id=txn_id,
            type=txn.type.value,
            decision=decision.value,
            admin_id=admin_id,
        )
        return result

    def gross_and_commission(self, net: int) -> tuple[int, int]:
        """What the learner paid for a REVENUE row of ``net``, and the platform's cut."""
        gross = gross_from_net(net, self.commission_rate)
        return gross, gross - net

    def dashboard_overview(self, now: Optional[datetime] = None) -> DashboardOverview:
        """Gross and commission are derived per REVENUE row, never stored."""
        now = now or _now()
        start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        with self.uow_factory() as uow:
            revenue = uow.ledger.revenue_amounts()
            monthly = uow.ledger.revenue_amounts(since=start_of_month)
            pending = uow.ledger.pending_withdrawals()
            total = uow.ledger.count()

        net = sum(revenue)
        gross = sum(self.gross_and_commission(a)[0] for a in revenue)
        return DashboardOverview(
            net_revenue=net,
            gross_revenue=gross,
            commission=gross - net,
            monthly_net_revenue=sum(monthly),
            monthly_gross_revenue=sum(self.gross_and_commission(a)[0] for a in monthly),
            revenue_transactions=len(revenue),
            average_transaction=round_half_up(Decimal(net) / len(revenue)) if revenue else 0,
            total_transactions=total,
            pending_withdrawals=int(pending.pending_count or 0),
            pending_withdrawal_amount=int(pending.pending_amount or 0),
        )
