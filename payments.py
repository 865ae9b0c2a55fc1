"""
Braintree payment gateway adapter.

Only two calls are used: a client token for the drop-in payment widget and a
sale transaction for the nonce the widget hands back.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import braintree
from braintree.exceptions.braintree_error import BraintreeError

from config import Settings

ENVIRONMENTS = {
    "sandbox": braintree.Environment.Sandbox,
    "production": braintree.Environment.Production,
}


class GatewayError(Exception):
    """The gateway answered with an error instead of a result."""

    def __init__(self, payload: Any):
        super().__init__(payload)
        self.payload = payload


@dataclass
class SaleResult:
    success: bool
    message: Optional[str] = None
    transaction: dict = field(default_factory=dict)


TRANSACTION_FIELDS = (
    "status",
    "type",
    "currency_iso_code",
    "merchant_account_id",
    "order_id",
    "payment_instrument_type",
    "processor_authorization_code",
    "processor_response_code",
    "processor_response_text",
    "processor_response_type",
    "network_transaction_id",
    "gateway_rejection_reason",
)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def transaction_record(transaction) -> dict:
    """Flatten an SDK transaction into a document Mongo can store.

    The SDK object holds a live gateway reference, so it is copied field by
    field rather than stored as is.
    """
    if transaction is None:
        return {}
    record = {"id": transaction.id, "amount": str(getattr(transaction, "amount", ""))}
    for name in TRANSACTION_FIELDS:
        record[name] = getattr(transaction, name, None)
    record["created_at"] = _iso(getattr(transaction, "created_at", None))
    record["updated_at"] = _iso(getattr(transaction, "updated_at", None))
    record["status_history"] = [
        {
            "status": getattr(event, "status", None),
            "amount": str(getattr(event, "amount", "")),
            "timestamp": _iso(getattr(event, "timestamp", None)),
        }
        for event in getattr(transaction, "status_history", None) or []
    ]
    return record


class BraintreeAdapter:
    def __init__(self, gateway: braintree.BraintreeGateway):
        self.gateway = gateway

    def generate_client_token(self) -> str:
        try:
            return self.gateway.client_token.generate()
        except BraintreeError as e:
            raise GatewayError(str(e) or e.__class__.__name__) from e

    def sale(self, nonce: str, amount: Decimal) -> SaleResult:
        result = self.gateway.transaction.sale({
            "amount": str(amount),
            "payment_method_nonce": nonce,
            "options": {"submit_for_settlement": True},
        })
        if result.is_success:
            return SaleResult(success=True, transaction=transaction_record(result.transaction))
        return SaleResult(
            success=False,
            message=result.message,
            transaction=transaction_record(getattr(result, "transaction", None)),
        )


def build_gateway(settings: Settings) -> BraintreeAdapter:
    environment = ENVIRONMENTS.get(settings.braintree_environment.lower(), braintree.Environment.Sandbox)
    gateway = braintree.BraintreeGateway(
        braintree.Configuration(
            environment=environment,
            merchant_id=settings.braintree_merchant_id,
            public_key=settings.braintree_public_key,
            private_key=settings.braintree_private_key,
        )
    )
    return BraintreeAdapter(gateway)
