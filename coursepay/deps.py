from functools import lru_cache
from typing import Callable

from fastapi import Depends

from coursepay.config import settings
from coursepay.db import SessionLocal
from coursepay.errors import GatewayError
from coursepay.gateway import PaymentGateway, PayOSGateway
from coursepay.notifications import LogNotifier, Notifier
from coursepay.repositories import UnitOfWork, unit_of_work_factory
from coursepay.services.admin import AdminReviewService
from coursepay.services.orders import OrderService
from coursepay.services.settlement import SettlementService
from coursepay.services.wallets import WalletLedger
from coursepay.services.webhooks import WebhookHandler


def get_uow_factory() -> Callable[[], UnitOfWork]:
    return unit_of_work_factory(SessionLocal)


@lru_cache
def _payos_gateway() -> PayOSGateway:
    return PayOSGateway(
        client_id=settings.payos_client_id,
        api_key=settings.payos_api_key,
        checksum_key=settings.payos_checksum_key,
        base_url=settings.payos_base_url,
        timeout=settings.gateway_timeout_seconds,
    )


def get_gateway() -> PaymentGateway:
    if not settings.gateway_configured:
        raise GatewayError("Payment gateway is not configured")
    return _payos_gateway()


_notifier = LogNotifier()


def get_notifier() -> Notifier:
    return _notifier


def get_order_service(
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
) -> OrderService:
    return OrderService(uow_factory, gateway, settings)


def get_settlement_service(
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
) -> SettlementService:
    return SettlementService(uow_factory, settings.commission_rate)


def get_webhook_handler(
    gateway: PaymentGateway = Depends(get_gateway),
    settlement: SettlementService = Depends(get_settlement_service),
) -> WebhookHandler:
    return WebhookHandler(gateway, settlement)


def get_wallet_ledger(
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
) -> WalletLedger:
    return WalletLedger(uow_factory)


def get_admin_service(
    uow_factory: Callable[[], UnitOfWork] = Depends(get_uow_factory),
) -> AdminReviewService:
    return AdminReviewService(uow_factory, settings.commission_rate)
