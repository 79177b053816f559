# coursepay/repositories.py
"""
Persistence seams for the services.

Each repository wraps one aggregate over a shared ``Session``; ``UnitOfWork``
binds them to a single database transaction. Services only ever see a unit
of work, so tests can hand them a unit of work over any session factory.
"""
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from coursepay.models import (
    Course, EnrolledCourse, Instructor, LedgerTransaction, Order, OrderStatus,
    PurchaseHistory, TransactionStatus, TransactionType, Wallet
)


class CatalogRepository:
    """Course/instructor read model."""

    def __init__(self, session: Session):
        self.session = session

    def get_instructor(self, instructor_id: str) -> Optional[Instructor]:
        return self.session.get(Instructor, instructor_id)

    def get_course(self, course_id: str) -> Optional[Course]:
        return self.session.get(Course, course_id)


class OrderRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, order: Order) -> Order:
        self.session.add(order)
        # flush so a duplicate order_code surfaces as IntegrityError here
        self.session.flush()
        return order

    def get_by_code(self, order_code: int, for_update: bool = False) -> Optional[Order]:
        stmt = select(Order).where(Order.order_code == order_code)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def set_status_if_pending(self, order_code: int, status: OrderStatus) -> bool:
        """PENDING is the only non-terminal status; False if the order already left it."""
        result = self.session.execute(
            update(Order)
            .where(Order.order_code == order_code, Order.status == OrderStatus.PENDING)
            .values(status=status, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def count(self) -> int:
        return self.session.execute(select(func.count(Order.id))).scalar_one()


class WalletRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, wallet: Wallet) -> Wallet:
        self.session.add(wallet)
        self.session.flush()
        return wallet

    def get(self, wallet_id: int) -> Optional[Wallet]:
        return self.session.get(Wallet, wallet_id)

    def get_by_instructor(self, instructor_id: str) -> Optional[Wallet]:
        return self.session.execute(
            select(Wallet).where(Wallet.instructor_id == instructor_id)
        ).scalar_one_or_none()

    def credit(self, wallet_id: int, amount: int) -> None:
        # Increment in SQL, never read-modify-write in Python
        self.session.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id)
            .values(balance=Wallet.balance + amount)
            .execution_options(synchronize_session=False)
        )

    def debit_if_covered(self, wallet_id: int, amount: int) -> bool:
        """Decrement only when the balance covers ``amount``; False otherwise."""
        result = self.session.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id, Wallet.balance >= amount)
            .values(balance=Wallet.balance - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class LedgerRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, txn: LedgerTransaction) -> LedgerTransaction:
        self.session.add(txn)
        self.session.flush()
        return txn

    def get(self, txn_id: int) -> Optional[LedgerTransaction]:
        return self.session.get(LedgerTransaction, txn_id)

    def transition(
        self,
        txn_id: int,
        new_status: TransactionStatus,
        reviewed_by: str,
        reviewed_at: datetime,
    ) -> bool:
        """Move a PENDING transaction to ``new_status``; False if it was not PENDING."""
        result = self.session.execute(
            update(LedgerTransaction)
            .where(
                LedgerTransaction.id == txn_id,
                LedgerTransaction.status == TransactionStatus.PENDING,
            )
            .values(status=new_status, reviewed_by=reviewed_by, reviewed_at=reviewed_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list(
        self,
        wallet_id: Optional[int] = None,
        type_: Optional[TransactionType] = None,
        status: Optional[TransactionStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LedgerTransaction]:
        stmt = select(LedgerTransaction)
        if wallet_id is not None:
            stmt = stmt.where(LedgerTransaction.wallet_id == wallet_id)
        if type_ is not None:
            stmt = stmt.where(LedgerTransaction.type == type_)
        if status is not None:
            stmt = stmt.where(LedgerTransaction.status == status)
        stmt = stmt.order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id.desc())
        return list(self.session.execute(stmt.limit(limit).offset(offset)).scalars().all())

    def revenue_amounts(self, since: Optional[datetime] = None) -> List[int]:
        stmt = select(LedgerTransaction.amount).where(
            LedgerTransaction.type == TransactionType.REVENUE,
            LedgerTransaction.status == TransactionStatus.APPROVED,
        )
        if since is not None:
            stmt = stmt.where(LedgerTransaction.created_at >= since)
        return [int(a) for a in self.session.execute(stmt).scalars().all()]

    def pending_withdrawals(self):
        return self.session.execute(
            select(
                func.count(LedgerTransaction.id).label("pending_count"),
                func.coalesce(func.sum(LedgerTransaction.amount), 0).label("pending_amount"),
            ).where(
                LedgerTransaction.type == TransactionType.WITHDRAWAL,
                LedgerTransaction.status == TransactionStatus.PENDING,
            )
        ).one()

    def count(self) -> int:
        return self.session.execute(select(func.count(LedgerTransaction.id))).scalar_one()


class EnrollmentRepository:
    def __init__(self, session: Session):
        self.session = session

    def exists(self, learner_id: str, course_id: str) -> bool:
        row = self.session.execute(
            select(EnrolledCourse.id).where(
                EnrolledCourse.learner_id == learner_id,
                EnrolledCourse.course_id == course_id,
            )
        ).first()
        return row is not None

    def add(self, enrollment: EnrolledCourse) -> EnrolledCourse:
        self.session.add(enrollment)
        # flush so the (learner_id, course_id) constraint fires inside the transaction
        self.session.flush()
        return enrollment


class PurchaseRepository:
    def __init__(self, session: Session):
        self.session = session

    def add(self, purchase: PurchaseHistory) -> PurchaseHistory:
        self.session.add(purchase)
        self.session.flush()
        return purchase


class UnitOfWork:
    """One session, one transaction. Rolls back unless ``commit()`` was called."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self.session: Optional[Session] = None

    def __enter__(self) -> "UnitOfWork":
        self.session = self.session_factory()
        self.catalog = CatalogRepository(self.session)
        self.orders = OrderRepository(self.session)
        self.wallets = WalletRepository(self.session)
        self.ledger = LedgerRepository(self.session)
        self.enrollments = EnrollmentRepository(self.session)
        self.purchases = PurchaseRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is not None:
                self.session.rollback()
        finally:
            self.session.close()
            self.session = None

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def refresh(self, obj) -> None:
        self.session.refresh(obj)


def unit_of_work_factory(session_factory: sessionmaker) -> Callable[[], UnitOfWork]:
    return lambda: UnitOfWork(session_factory)
