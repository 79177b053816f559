from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from coursepay.models import LedgerTransaction, TransactionStatus, TransactionType
from coursepay.services.admin import AdminReviewService


class CamelModel(BaseModel):
    # JSON bodies are camelCase; Python attributes stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class CreatePaymentIn(CamelModel):
    course_id: str = Field(..., min_length=1)
    # Major currency units as shown in the catalog; converted to minor units on entry
    price: Decimal
    instructor_id: str = Field(..., min_length=1)
    course_name: str = ""

class CheckoutOut(CamelModel):
    checkout_url: str
    order_code: int
    order_id: int
    amount: int
    status: str
    payment_link_id: Optional[str] = None
    qr_code: Optional[str] = None

class PaymentInfoOut(CamelModel):
    order_code: int
    amount: int
    amount_paid: int
    status: str
    payment_link_id: Optional[str] = None
    created_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[str] = None
    transactions: List[Dict[str, Any]] = []

class CancelPaymentIn(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=255)

class ConfirmWebhookIn(CamelModel):
    webhook_url: str = Field(..., min_length=1)

class MessageOut(BaseModel):
    message: str


class TransactionOut(CamelModel):
    id: int
    wallet_id: int
    amount: int
    type: TransactionType
    status: TransactionStatus
    order_code: Optional[int] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    # Derived for REVENUE rows: what the learner paid and what the platform kept
    gross_amount: Optional[int] = None
    commission: Optional[int] = None

    @classmethod
    def from_transaction(cls, txn: LedgerTransaction, reporting: AdminReviewService) -> "TransactionOut":
        out = cls.model_validate(txn)
        if txn.type == TransactionType.REVENUE:
            out.gross_amount, out.commission = reporting.gross_and_commission(int(txn.amount))
        return out

class ReviewIn(CamelModel):
    status: TransactionStatus

class ReviewOut(CamelModel):
    transaction: TransactionOut
    wallet_balance: int

class WalletOut(CamelModel):
    id: int
    instructor_id: str
    balance: int

class WithdrawIn(CamelModel):
    amount: Decimal

class DashboardOut(CamelModel):
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
