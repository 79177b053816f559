# coursepay/services/wallets.py
from typing import Callable, List

import structlog
from sqlalchemy.exc import IntegrityError

from coursepay.errors import NotFoundError, ValidationError
from coursepay.metrics import withdrawal_requests
from coursepay.models import LedgerTransaction, TransactionStatus, TransactionType, Wallet
from coursepay.repositories import UnitOfWork

logger = structlog.get_logger(__name__)


class WalletLedger:
    """Instructor wallets. Balances move only through ledger transactions."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self.uow_factory = uow_factory

    def open_wallet(self, instructor_id: str) -> Wallet:
        with self.uow_factory() as uow:
            if not uow.catalog.get_instructor(instructor_id):
                raise NotFoundError("Instructor not found")
            try:
                wallet = uow.wallets.add(Wallet(instructor_id=instructor_id, balance=0))
                uow.refresh(wallet)
                uow.commit()
                logger.info("wallet_opened", instructor_id=instructor_id, wallet_id=wallet.id)
                return wallet
            except IntegrityError:
                # one wallet per instructor; a second open returns the first
                uow.rollback()
                return uow.wallets.get_by_instructor(instructor_id)

    def get_wallet(self, instructor_id: str) -> Wallet:
        with self.uow_factory() as uow:
            wallet = uow.wallets.get_by_instructor(instructor_id)
            if not wallet:
                raise NotFoundError("Instructor wallet not found")
            return wallet

    def list_transactions(self, instructor_id: str, limit: int = 50, offset: int = 0) -> List[LedgerTransaction]:
        with self.uow_factory() as uow:
            wallet = uow.wallets.get_by_instructor(instructor_id)
            if not wallet:
                raise NotFoundError("Instructor wallet not found")
            return uow.ledger.list(wallet_id=wallet.id, limit=limit, offset=offset)

    def request_withdrawal(self, instructor_id: str, amount: int) -> LedgerTransaction:
        """
        Reserve ``amount`` and open a PENDING WITHDRAWAL for admin review.
        The balance drops now; a rejection gives it back, an approval keeps it out.
        """
        if amount <= 0:
            raise ValidationError("Withdrawal amount must be greater than 0")
        with self.uow_factory() as uow:
            wallet = uow.wallets.get_by_instructor(instructor_id)
            if not wallet:
                raise NotFoundError("Instructor wallet not found")
            if not uow.wallets.debit_if_covered(wallet.id, amount):
                raise ValidationError("Insufficient wallet balance")
            txn = uow.ledger.add(LedgerTransaction(
                wallet_id=wallet.id,
                amount=amount,
                type=TransactionType.WITHDRAWAL,
                status=TransactionStatus.PENDING,
            ))
            uow.refresh(txn)
            uow.commit()

        withdrawal_requests.inc()
        logger.info("withdrawal_requested", instructor_id=instructor_id, transaction_id=txn.id, amount=amount)
        return txn
