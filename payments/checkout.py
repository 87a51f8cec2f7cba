from typing import Dict, List, Optional

import stripe
from loguru import logger

import config
from booking_schemas import LineItem
from gateway_tools import GatewayResponse, intent_id_from_secret

# Venue address used as the taxable location for Stripe Tax.
TAX_CUSTOMER_ADDRESS = {
    "line1": "920 5th Ave",
    "city": "Seattle",
    "state": "WA",
    "postal_code": "98104",
    "country": "US",
}

# Statuses after which the customer has nothing left to do.
SETTLED_STATUSES = ("succeeded", "processing", "requires_capture")


def _error_message(exc: stripe.StripeError) -> str:
    return exc.user_message or str(exc) or "Payment gateway error"


def calculate_tax(items: List[LineItem], currency: str, api_key: str):
    """
    Create a Stripe Tax calculation for the booking's line items.
    Returns the calculation object; its id is attached to the PaymentIntent.
    """
    return stripe.tax.Calculation.create(
        currency=currency.lower(),
        customer_details={"address": TAX_CUSTOMER_ADDRESS, "address_source": "shipping"},
        line_items=[{"amount": it.amount, "reference": it.id} for it in items],
        api_key=api_key,
    )


class StripeGateway:
    """
    Stripe-backed PaymentGateway.

    create_authorization needs the secret key and is only ever used by the
    booking server. confirm uses the publishable key plus the client secret,
    which is everything a browser would hold.
    """

    def __init__(self, secret_key: Optional[str] = None, publishable_key: Optional[str] = None,
                 return_url: Optional[str] = None):
        self._secret_key = secret_key
        self._publishable_key = publishable_key
        self.return_url = return_url or config.PAYMENT_RETURN_URL

    def create_authorization(self, amount: int, currency: str, metadata: Dict[str, str]) -> GatewayResponse:
        api_key = self._secret_key or config.require_secret_key()
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                api_key=api_key,
            )
        except stripe.StripeError as exc:
            logger.warning(f"PaymentIntent creation failed: {exc.__class__.__name__}")
            return GatewayResponse(success=False, error_message=_error_message(exc),
                                   raw={"error": _error_message(exc)})
        return GatewayResponse(success=True, client_secret=intent.client_secret, status=intent.status,
                               raw={"id": intent.id, "amount": intent.amount, "currency": intent.currency})

    def confirm(self, client_secret: str, payment_method: str) -> GatewayResponse:
        api_key = self._publishable_key or config.require_publishable_key()
        try:
            intent = stripe.PaymentIntent.confirm(
                intent_id_from_secret(client_secret),
                client_secret=client_secret,
                payment_method=payment_method,
                return_url=self.return_url,
                api_key=api_key,
            )
        except stripe.StripeError as exc:
            logger.warning(f"PaymentIntent confirmation failed: {exc.__class__.__name__}")
            return GatewayResponse(success=False, error_message=_error_message(exc),
                                   raw={"error": _error_message(exc)})

        if intent.status in SETTLED_STATUSES:
            return GatewayResponse(success=True, client_secret=client_secret, status=intent.status,
                                   raw={"id": intent.id})
        if intent.status == "requires_action":
            message = "Additional authentication is required to complete this payment."
        else:
            message = "Your payment was not successful, please try again."
        return GatewayResponse(success=False, status=intent.status, error_message=message,
                               raw={"id": intent.id})
