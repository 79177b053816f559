# coursepay/services/settlement.py
from dataclasses import dataclass
from decimal import Decimal
from time import perf_counter
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import IntegrityError

from coursepay.errors import ConflictError, CoursePayError, NotFoundError, ValidationError
from coursepay.gateway import PaymentEvent
from coursepay.metrics import settlement_errors, settlement_latency, settlement_replays, settlements_total
from coursepay.models import (
    EnrolledCourse, LedgerTransaction, OrderStatus, PurchaseHistory,
    TransactionStatus, TransactionType
)
from coursepay.money import COMMISSION_RATE, instructor_share
from coursepay.repositories import UnitOfWork

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    order_code: int
    settled: bool  # False: the order had already been settled by an earlier delivery
    learner_id: Optional[str] = None
    course_id: Optional[str] = None
    amount: int = 0
    instructor_share: int = 0
    instructor_email: Optional[str] = None


class SettlementService:
    def __init__(self, uow_factory: Callable[[], UnitOfWork], commission_rate: Decimal = COMMISSION_RATE):
        self.uow_factory = uow_factory
        self.commission_rate = commission_rate

    def settle(self, event: PaymentEvent) -> SettlementResult:
        """
        Turn a verified payment into its financial effects, exactly once:
          - lock the order row; SUCCESS means an earlier delivery already
            settled it -> no-op
          - in ONE transaction:
              * insert the enrollment ((learner, course) is unique)
              * insert an APPROVED REVENUE transaction for the instructor share
                (order_code is unique) and increment the wallet in SQL
              * insert the purchase history row
              * flip the order PENDING -> SUCCESS
        Any failure rolls all four back and the order stays PENDING.
        """
        start = perf_counter()
        log = logger.bind(order_code=event.order_code)
        try:
            with self.uow_factory() as uow:
                order = uow.orders.get_by_code(event.order_code, for_update=True)
                if not order:
                    raise NotFoundError("Order not found")

                if order.status == OrderStatus.SUCCESS:
                    settlement_replays.inc()
                    log.info("settlement_replay")
                    return SettlementResult(order_code=order.order_code, settled=False)
                if order.status == OrderStatus.CANCELLED:
                    raise ConflictError("Order was cancelled before payment was confirmed")
                if event.amount != order.amount:
                    raise ValidationError(
                        f"Paid amount {event.amount} does not match order amount {order.amount}"
                    )

                wallet = uow.wallets.get_by_instructor(order.instructor_id)
                if not wallet:
                    raise NotFoundError("Instructor wallet not found")

                try:
                    uow.enrollments.add(EnrolledCourse(
                        learner_id=order.user_id, course_id=order.course_id, progress=0
                    ))
                except IntegrityError as e:
                    raise ConflictError("User is already enrolled in this course") from e

                share = instructor_share(order.amount, self.commission_rate)
                try:
                    uow.ledger.add(LedgerTransaction(
                        wallet_id=wallet.id,
                        amount=share,
                        type=TransactionType.REVENUE,
                        status=TransactionStatus.APPROVED,
                        order_code=order.order_code,
                    ))
                except IntegrityError as e:
                    raise ConflictError("Order revenue was already credited") from e
                uow.wallets.credit(wallet.id, share)

                uow.purchases.add(PurchaseHistory(
                    learner_id=order.user_id,
                    course_id=order.course_id,
                    price=order.amount,
                    order_code=order.order_code,
                ))

                if not uow.orders.set_status_if_pending(order.order_code, OrderStatus.SUCCESS):
                    raise ConflictError("Order was settled concurrently")

                instructor = uow.catalog.get_instructor(order.instructor_id)
                result = SettlementResult(
                    order_code=order.order_code,
                    settled=True,
                    learner_id=order.user_id,
                    course_id=order.course_id,
                    amount=order.amount,
                    instructor_share=share,
                    instructor_email=instructor.email if instructor else None,
                )
                uow.commit()

            settlements_total.inc()
            log.info(
                "settlement_completed",
                learner_id=result.learner_id,
                course_id=result.course_id,
                amount=result.amount,
                instructor_share=result.instructor_share,
            )
            return result
        except CoursePayError as e:
            settlement_errors.labels(type(e).__name__).inc()
            raise
        except Exception:
            settlement_errors.labels("unexpected").inc()
            raise
        finally:
            settlement_latency.observe(perf_counter() - start)
