# coursepay/services/webhooks.py
from typing import Any, Dict, Optional, Tuple

import structlog

from coursepay.errors import ConflictError, NotFoundError, SignatureError, ValidationError
from coursepay.gateway import PaymentGateway
from coursepay.metrics import webhook_events
from coursepay.services.settlement import SettlementResult, SettlementService

logger = structlog.get_logger(__name__)

# Settlement failures that a provider retry cannot fix
DO_NOT_RETRY = (NotFoundError, ConflictError, ValidationError)


class WebhookHandler:
    def __init__(self, gateway: PaymentGateway, settlement: SettlementService):
        self.gateway = gateway
        self.settlement = settlement

    def handle(self, raw_payload: Dict[str, Any]) -> Tuple[int, Dict, Optional[SettlementResult]]:
        """
        Verify, then settle. Returns (status_code, response_json, result):
          - bad signature -> 400, nothing processed
          - settled / already settled / not a payment -> 200
          - anomaly a retry cannot fix -> 200, logged
          - anything else -> 500 so the provider retries
        ``result`` is set only when this delivery applied the settlement.
        """
        try:
            event = self.gateway.verify_webhook(raw_payload)
        except SignatureError as e:
            webhook_events.labels("rejected").inc()
            logger.warning("webhook_rejected", reason=e.detail)
            return 400, {"detail": e.detail}, None

        log = logger.bind(order_code=event.order_code)
        if not event.paid:
            webhook_events.labels("ignored").inc()
            log.info("webhook_ignored", reason="not a successful payment")
            return 200, {"message": "Webhook ignored"}, None

        try:
            result = self.settlement.settle(event)
        except DO_NOT_RETRY as e:
            webhook_events.labels("anomaly").inc()
            log.warning("webhook_anomaly", error=type(e).__name__, detail=e.detail)
            return 200, {"message": f"Webhook acknowledged: {e.detail}"}, None
        except Exception:
            webhook_events.labels("failed").inc()
            log.exception("webhook_failed")
            return 500, {"detail": "Failed to process webhook"}, None

        if not result.settled:
            webhook_events.labels("duplicate").inc()
            return 200, {"message": "Payment already processed"}, None
        webhook_events.labels("settled").inc()
        return 200, {"message": "Webhook processed successfully"}, result
