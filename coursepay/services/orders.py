# coursepay/services/orders.py
import random
import time
from dataclasses import dataclass
from time import perf_counter
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import IntegrityError

from coursepay.config import Settings
from coursepay.errors import ConflictError, CoursePayError, NotFoundError
from coursepay.gateway import LineItem, PaymentGateway, PaymentInfo
from coursepay.metrics import order_code_collisions, order_errors, order_latency, orders_created
from coursepay.models import Order, OrderStatus
from coursepay.repositories import UnitOfWork
from coursepay.services.validation import VerifiedPurchase, validate_purchase

logger = structlog.get_logger(__name__)

PAYMENT_DESCRIPTION = "Payment for course"


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    order_code: int
    amount: int
    status: str
    checkout_url: str
    payment_link_id: Optional[str] = None
    qr_code: Optional[str] = None


class OrderService:
    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        gateway: PaymentGateway,
        settings: Settings,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        self.uow_factory = uow_factory
        self.gateway = gateway
        self.settings = settings
        self.clock = clock
        self.rng = rng or random.Random()

    def create_order(
        self,
        course_id: str,
        learner_id: str,
        instructor_id: str,
        price: int,
        course_name: str,
    ) -> CheckoutResult:
        """
        Checkout flow:
          - validate against the catalog (no writes on failure)
          - insert the PENDING order; a duplicate order_code is caught from the
            unique constraint and retried with a random offset
          - ask the gateway for a checkout link for the persisted order
        A gateway failure leaves the order PENDING; it never reaches the ledger.
        """
        start = perf_counter()
        try:
            with self.uow_factory() as uow:
                purchase = validate_purchase(uow, course_id, instructor_id, price, learner_id)

            order = self._insert_order(purchase, learner_id)
            logger.info("order_created", order_code=order.order_code, course_id=course_id, learner_id=learner_id)

            client_url = self.settings.client_url.rstrip("/")
            link = self.gateway.create_link(
                order_code=order.order_code,
                amount=order.amount,
                description=PAYMENT_DESCRIPTION,
                items=[LineItem(name=f"{PAYMENT_DESCRIPTION} {course_name or purchase.course_title}", quantity=1, price=order.amount)],
                cancel_url=f"{client_url}/checkout/{course_id}",
                return_url=f"{client_url}/courses/{course_id}",
                expires_in_minutes=self.settings.payment_link_ttl_minutes,
            )

            with self.uow_factory() as uow:
                persisted = uow.orders.get_by_code(order.order_code)
                persisted.payment_link_id = link.payment_link_id
                uow.commit()

            orders_created.inc()
            return CheckoutResult(
                order_id=order.id,
                order_code=order.order_code,
                amount=order.amount,
                status=OrderStatus.PENDING.value,
                checkout_url=link.checkout_url,
                payment_link_id=link.payment_link_id,
                qr_code=link.qr_code,
            )
        except CoursePayError as e:
            order_errors.labels(type(e).__name__).inc()
            raise
        finally:
            order_latency.observe(perf_counter() - start)

    def _insert_order(self, purchase: VerifiedPurchase, learner_id: str) -> Order:
        base = int(self.clock())
        order_code = base
        for attempt in range(1, self.settings.order_code_max_attempts + 1):
            with self.uow_factory() as uow:
                try:
                    order = uow.orders.add(Order(
                        order_code=order_code,
                        course_id=purchase.course_id,
                        user_id=learner_id,
                        instructor_id=purchase.instructor_id,
                        amount=purchase.price,
                        status=OrderStatus.PENDING,
                    ))
                    uow.commit()
                    return order
                except IntegrityError:
                    uow.rollback()
            order_code_collisions.inc()
            logger.info("order_code_collision", order_code=order_code, attempt=attempt)
            order_code = base + self.rng.randint(1, self.settings.order_code_max_offset)
        raise ConflictError("Could not allocate a unique order code, retry shortly")

    def get_payment_info(self, order_code: int) -> PaymentInfo:
        return self.gateway.get_payment_info(order_code)

    def cancel_payment(
        self, order_code: int, reason: Optional[str], user_id: str, is_admin: bool = False
    ) -> PaymentInfo:
        """Best-effort cancel at the gateway; only the order row changes, never the ledger."""
        with self.uow_factory() as uow:
            order = uow.orders.get_by_code(order_code)
            if not order or (not is_admin and order.user_id != user_id):
                raise NotFoundError("Order not found")
            if order.status != OrderStatus.PENDING:
                raise ConflictError(f"Order is already {order.status.value}")

        info = self.gateway.cancel_link(order_code, reason)

        with self.uow_factory() as uow:
            if uow.orders.set_status_if_pending(order_code, OrderStatus.CANCELLED):
                uow.commit()
                logger.info("order_cancelled", order_code=order_code, reason=reason)
            else:
                # settled between the check and the gateway call; the webhook wins
                logger.warning("order_cancel_lost_race", order_code=order_code)
        return info
