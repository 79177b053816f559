# coursepay/gateway.py
"""
Payment gateway adapter.

``PaymentGateway`` is the only seam the services talk to. ``PayOSGateway`` is
the PayOS strategy; PayOS field names and result codes never leave this
module. Every operation wraps exactly one provider call and turns provider
failures into ``GatewayError``; webhook verification fails closed with
``SignatureError``.
"""
import hashlib
import hmac
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
import structlog

from coursepay.errors import GatewayError, SignatureError
from coursepay.metrics import gateway_errors

logger = structlog.get_logger(__name__)

PAYOS_SUCCESS = "00"
PAYOS_DESCRIPTION_MAX = 25


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    price: int


@dataclass(frozen=True)
class CheckoutLink:
    order_code: int
    amount: int
    checkout_url: str
    payment_link_id: Optional[str] = None
    status: Optional[str] = None
    qr_code: Optional[str] = None


@dataclass(frozen=True)
class PaymentInfo:
    order_code: int
    amount: int
    amount_paid: int
    status: str
    payment_link_id: Optional[str] = None
    created_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[str] = None
    transactions: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class PaymentEvent:
    """A verified, provider-neutral payment notification."""
    order_code: int
    amount: int
    paid: bool
    reference: Optional[str] = None
    description: Optional[str] = None
    occurred_at: Optional[str] = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_link(
        self,
        order_code: int,
        amount: int,
        description: str,
        items: List[LineItem],
        cancel_url: str,
        return_url: str,
        expires_in_minutes: int = 10,
    ) -> CheckoutLink:
        pass

    @abstractmethod
    def get_payment_info(self, order_id: int | str) -> PaymentInfo:
        pass

    @abstractmethod
    def cancel_link(self, order_id: int | str, reason: Optional[str] = None) -> PaymentInfo:
        pass

    @abstractmethod
    def verify_webhook(self, raw_payload: Dict[str, Any]) -> PaymentEvent:
        pass

    @abstractmethod
    def confirm_webhook_url(self, url: str) -> None:
        pass


def _signature_value(value: Any) -> str:
    if value is None or value in ("null", "undefined"):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return json.dumps(
            [dict(sorted(v.items())) if isinstance(v, dict) else v for v in value],
            separators=(",", ":"),
            ensure_ascii=False,
        )
    if isinstance(value, dict):
        return json.dumps(dict(sorted(value.items())), separators=(",", ":"), ensure_ascii=False)
    return str(value)


def canonical_data(data: Dict[str, Any]) -> str:
    """``k1=v1&k2=v2`` over the keys in sorted order, as PayOS signs webhook data."""
    return "&".join(f"{k}={_signature_value(data[k])}" for k in sorted(data))


def sign(checksum_key: str, message: str) -> str:
    return hmac.new(
        key=checksum_key.encode("utf-8"),
        msg=message.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


class PayOSGateway(PaymentGateway):
    def __init__(
        self,
        client_id: str,
        api_key: str,
        checksum_key: str,
        base_url: str = "https://api-merchant.payos.vn",
        timeout: float = 30.0,
        http: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.api_key = api_key
        self.checksum_key = checksum_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    def _call(self, operation: str, method: str, path: str, body: Optional[dict] = None) -> Dict[str, Any]:
        try:
            resp = self.http.request(
                method,
                f"{self.base_url}{path}",
                json=body,
                headers={
                    "x-client-id": self.client_id,
                    "x-api-key": self.api_key,
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            gateway_errors.labels(operation).inc()
            logger.warning("gateway_unreachable", operation=operation, error=str(e))
            raise GatewayError(f"Payment gateway unreachable during {operation}") from e

        if resp.status_code >= 400:
            gateway_errors.labels(operation).inc()
            logger.warning("gateway_http_error", operation=operation, status=resp.status_code)
            raise GatewayError(f"Payment gateway error ({resp.status_code}) during {operation}")

        try:
            payload = resp.json() or {}
        except ValueError as e:
            gateway_errors.labels(operation).inc()
            raise GatewayError(f"Malformed gateway response during {operation}") from e

        if payload.get("code") != PAYOS_SUCCESS:
            gateway_errors.labels(operation).inc()
            logger.warning("gateway_rejected", operation=operation, code=payload.get("code"), desc=payload.get("desc"))
            raise GatewayError(f"Payment gateway rejected {operation}: {payload.get('desc') or 'unknown error'}")
        return payload.get("data") or {}

    def create_link(
        self,
        order_code: int,
        amount: int,
        description: str,
        items: List[LineItem],
        cancel_url: str,
        return_url: str,
        expires_in_minutes: int = 10,
    ) -> CheckoutLink:
        description = description[:PAYOS_DESCRIPTION_MAX]
        body = {
            "orderCode": order_code,
            "amount": amount,
            "description": description,
            "items": [{"name": i.name, "quantity": i.quantity, "price": i.price} for i in items],
            "cancelUrl": cancel_url,
            "returnUrl": return_url,
            "expiredAt": int(time.time()) + expires_in_minutes * 60,
        }
        # PayOS signs only these five fields, alphabetically
        body["signature"] = sign(
            self.checksum_key,
            f"amount={amount}&cancelUrl={cancel_url}&description={description}"
            f"&orderCode={order_code}&returnUrl={return_url}",
        )
        data = self._call("create_link", "POST", "/v2/payment-requests", body)
        if not data.get("checkoutUrl"):
            gateway_errors.labels("create_link").inc()
            raise GatewayError("Payment gateway returned no checkout URL")
        return CheckoutLink(
            order_code=int(data.get("orderCode", order_code)),
            amount=int(data.get("amount", amount)),
            checkout_url=str(data["checkoutUrl"]),
            payment_link_id=data.get("paymentLinkId"),
            status=data.get("status"),
            qr_code=data.get("qrCode"),
        )

    def _payment_info(self, data: Dict[str, Any], order_id: int | str) -> PaymentInfo:
        return PaymentInfo(
            order_code=int(data.get("orderCode") or order_id),
            amount=int(data.get("amount") or 0),
            amount_paid=int(data.get("amountPaid") or 0),
            status=str(data.get("status") or "UNKNOWN"),
            payment_link_id=data.get("id"),
            created_at=data.get("createdAt"),
            cancellation_reason=data.get("cancellationReason"),
            cancelled_at=data.get("canceledAt"),
            transactions=list(data.get("transactions") or []),
        )

    def get_payment_info(self, order_id: int | str) -> PaymentInfo:
        data = self._call("get_payment_info", "GET", f"/v2/payment-requests/{order_id}")
        return self._payment_info(data, order_id)

    def cancel_link(self, order_id: int | str, reason: Optional[str] = None) -> PaymentInfo:
        body = {"cancellationReason": reason} if reason else None
        data = self._call("cancel_link", "POST", f"/v2/payment-requests/{order_id}/cancel", body)
        return self._payment_info(data, order_id)

    def confirm_webhook_url(self, url: str) -> None:
        self._call("confirm_webhook", "POST", "/confirm-webhook", {"webhookUrl": url})

    def verify_webhook(self, raw_payload: Dict[str, Any]) -> PaymentEvent:
        if not isinstance(raw_payload, dict):
            raise SignatureError("Webhook payload must be a JSON object")
        data = raw_payload.get("data")
        signature = raw_payload.get("signature")
        if not isinstance(data, dict) or not isinstance(signature, str) or not signature:
            raise SignatureError("Webhook payload is missing data or signature")

        expected = sign(self.checksum_key, canonical_data(data))
        if not hmac.compare_digest(expected, signature.strip().lower()):
            raise SignatureError("Invalid webhook signature")

        try:
            order_code = int(data["orderCode"])
            amount = int(data.get("amount") or 0)
        except (KeyError, TypeError, ValueError) as e:
            raise SignatureError("Webhook data has no usable orderCode") from e

        return PaymentEvent(
            order_code=order_code,
            amount=amount,
            paid=data.get("code", raw_payload.get("code")) == PAYOS_SUCCESS,
            reference=data.get("reference"),
            description=data.get("description"),
            occurred_at=data.get("transactionDateTime"),
        )
