from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from fastapi.responses import JSONResponse

from coursepay.config import settings
from coursepay.deps import get_gateway, get_notifier, get_order_service, get_webhook_handler
from coursepay.gateway import PaymentGateway
from coursepay.money import to_minor_units
from coursepay.notifications import Notifier, send_quietly
from coursepay.schemas import (
    CancelPaymentIn, CheckoutOut, ConfirmWebhookIn, CreatePaymentIn, MessageOut, PaymentInfoOut
)
from coursepay.security import CurrentUser, get_current_user, require_admin
from coursepay.services.orders import OrderService
from coursepay.services.webhooks import WebhookHandler

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/create-payment", response_model=CheckoutOut)
def create_payment(
    payload: CreatePaymentIn,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    result = orders.create_order(
        course_id=payload.course_id,
        learner_id=user.id,
        instructor_id=payload.instructor_id,
        price=to_minor_units(payload.price, settings.currency_exponent),
        course_name=payload.course_name,
    )
    return CheckoutOut.model_validate(result)


@router.get("/payment-info/{order_id}", response_model=PaymentInfoOut)
def get_payment_info(
    order_id: int,
    _: CurrentUser = Depends(require_admin),
    orders: OrderService = Depends(get_order_service),
):
    return PaymentInfoOut.model_validate(orders.get_payment_info(order_id))


@router.post("/cancel-payment/{order_id}", response_model=PaymentInfoOut)
def cancel_payment(
    order_id: int,
    payload: Optional[CancelPaymentIn] = None,
    user: CurrentUser = Depends(get_current_user),
    orders: OrderService = Depends(get_order_service),
):
    reason = payload.reason if payload else None
    info = orders.cancel_payment(order_id, reason, user_id=user.id, is_admin=user.is_admin)
    return PaymentInfoOut.model_validate(info)


@router.post("/webhook", response_model=MessageOut)
def handle_webhook(
    background: BackgroundTasks,
    payload: Dict[str, Any] = Body(...),
    handler: WebhookHandler = Depends(get_webhook_handler),
    notifier: Notifier = Depends(get_notifier),
):
    status_code, body, result = handler.handle(payload)
    if result is not None:
        background.add_task(
            send_quietly,
            notifier,
            result.instructor_email,
            "New course purchase",
            f"Course {result.course_id} was purchased (order {result.order_code}). "
            f"{result.instructor_share} was credited to your wallet.",
        )
    return JSONResponse(status_code=status_code, content=body, background=background)


@router.post("/confirm-webhook", response_model=MessageOut)
def confirm_webhook(
    payload: ConfirmWebhookIn,
    _: CurrentUser = Depends(require_admin),
    gateway: PaymentGateway = Depends(get_gateway),
):
    gateway.confirm_webhook_url(payload.webhook_url)
    return {"message": "Webhook URL confirmed"}
