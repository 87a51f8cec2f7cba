from typing import Optional

import anyio
import httpx
from loguru import logger

import config
from booking_schemas import BookingRequest, BookingSession, FlowState, PaymentSession, PriceBreakdown
from errors import (
    BookingError,
    GatewayConfirmationError,
    GatewayRequestError,
    ServerValidationError,
    SessionStateError,
)
from gateway_tools import PaymentGateway, call_gateway
from pricing import DEFAULT_RATES, RateTable, compute_price, line_items, to_minor_units

PROCESSING_MESSAGE = "Your payment is being processed."


class AuthorizationClient:
    """
    Talks to the booking server's authorization-issuing endpoint.
    Only the client secret ever comes back; the gateway secret key stays on
    the server.
    """

    def __init__(self, base_url: str = None, timeout: float = None, transport: httpx.AsyncBaseTransport = None):
        self.base_url = base_url or config.BOOKING_SERVER_URL
        self.timeout = timeout or config.PAYMENT_TIMEOUT_SECONDS
        self.transport = transport

    async def request(self, payload: dict) -> str:
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                         transport=self.transport) as client:
                response = await client.post(config.PAYMENT_INTENT_PATH, json=payload)
        except httpx.TimeoutException as exc:
            raise GatewayRequestError("The booking server did not respond in time, please try again") from exc
        except httpx.HTTPError as exc:
            raise GatewayRequestError(f"Could not reach the booking server: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success:
            secret = body.get("clientSecret")
            if not secret:
                raise GatewayRequestError("No client secret in response")
            return secret

        message = body.get("error") or f"HTTP error! Status: {response.status_code}"
        if response.is_client_error:
            raise ServerValidationError(message, status_code=response.status_code)
        raise GatewayRequestError(message, status_code=response.status_code)


class PaymentOrchestrator:
    """
    Drives one booking session from estimate to payment outcome:

        no_estimate -> estimated -> authorization_requested
            -> authorization_ready -> confirming -> succeeded | failed

    Gateway and server errors never escape request_authorization or
    confirm_payment; they land in session.payment.message and the session
    moves to 'failed', from which a new authorization can be requested.
    SessionStateError is raised for calls the current state does not allow.
    """

    def __init__(self, session: BookingSession, gateway: PaymentGateway,
                 authorizer: Optional[AuthorizationClient] = None, rates: RateTable = DEFAULT_RATES,
                 currency: str = None, timeout: float = None):
        self.session = session
        self.gateway = gateway
        self.authorizer = authorizer or AuthorizationClient()
        self.rates = rates
        self.currency = (currency or config.PAYMENT_CURRENCY).lower()
        self.timeout = timeout or config.PAYMENT_TIMEOUT_SECONDS
        self.last_error: Optional[BookingError] = None

    @property
    def state(self) -> FlowState:
        return self.session.payment.state

    @property
    def can_pay(self) -> bool:
        payment = self.session.payment
        return payment.state == "authorization_ready" and payment.confirmed_total > 0

    def _transition(self, payment: PaymentSession, state: FlowState):
        logger.debug(f"booking session: {payment.state} -> {state}")
        payment.state = state

    def _is_current(self, payment: PaymentSession) -> bool:
        if self.session.payment is payment:
            return True
        logger.info("Session was abandoned while waiting on the gateway, discarding the result")
        return False

    def _fail(self, payment: PaymentSession, error: BookingError) -> PaymentSession:
        self.last_error = error
        if payment.state == "authorization_requested":
            payment.authorization = "failed"
            payment.client_secret = None
        payment.outcome = "failed"
        payment.message = error.message
        logger.warning(f"Payment step failed ({error.__class__.__name__}): {error.message}")
        self._transition(payment, "failed")
        return payment

    def confirm_details(self, booking: BookingRequest) -> PriceBreakdown:
        """
        Price the booking and store the estimate. Calling again replaces the
        previous estimate and drops any authorization issued for it.
        InvalidInputError propagates with the session untouched.
        """
        if self.state in ("authorization_requested", "confirming"):
            raise SessionStateError("A payment is already in progress")
        if self.state == "succeeded":
            raise SessionStateError("This booking has already been paid")

        breakdown, total = compute_price(booking, self.rates)
        self.session.booking = booking
        self.session.breakdown = breakdown
        self.session.payment = PaymentSession(confirmed_total=total, state="estimated")
        self.last_error = None
        logger.info(f"Estimated booking total {total:.2f} for {booking.guests} guests")
        return breakdown

    async def request_authorization(self, confirmed_total: Optional[float] = None) -> PaymentSession:
        """
        Ask the booking server for a client secret sized to the total.
        confirmed_total defaults to the stored estimate and only replaces it
        once the server has accepted it.
        """
        payment = self.session.payment
        if payment.state not in ("estimated", "failed"):
            raise SessionStateError(f"Cannot request a payment authorization while {payment.state}")
        total = payment.confirmed_total if confirmed_total is None else confirmed_total
        if not total or total <= 0 or self.session.booking is None:
            raise SessionStateError("Confirm booking details with a positive total before paying")

        if payment.state == "failed":
            self._transition(payment, "estimated")
        payment.authorization = "pending"
        payment.client_secret = None
        payment.outcome = "none"
        payment.message = None
        self._transition(payment, "authorization_requested")

        # The server reprices the booking and rejects an amount that disagrees.
        body = {
            "amount": to_minor_units(total),
            "currency": self.currency,
            "items": [item.model_dump() for item in line_items(self.session.breakdown)],
            "booking": self.session.booking.model_dump(mode="json"),
        }
        try:
            with anyio.fail_after(self.timeout):
                secret = await self.authorizer.request(body)
        except TimeoutError:
            error = GatewayRequestError("The payment server did not respond in time, please try again")
        except (ServerValidationError, GatewayRequestError) as exc:
            error = exc
        except Exception:
            logger.exception("Authorization request failed unexpectedly")
            error = GatewayRequestError("Could not request a payment authorization, please try again")
        else:
            error = None

        if not self._is_current(payment):
            return payment
        if error is not None:
            return self._fail(payment, error)

        payment.confirmed_total = total
        payment.client_secret = secret
        payment.authorization = "ready"
        self._transition(payment, "authorization_ready")
        return payment

    async def confirm_payment(self, payment_method: str, client_secret: Optional[str] = None) -> PaymentSession:
        payment = self.session.payment
        if payment.state == "confirming":
            raise SessionStateError("Payment confirmation is already in progress")
        if payment.state != "authorization_ready" or not payment.client_secret:
            raise SessionStateError("No payment authorization is ready")
        handle = client_secret or payment.client_secret
        if handle != payment.client_secret:
            raise SessionStateError("Authorization handle does not belong to this session")

        self._transition(payment, "confirming")
        try:
            result = await call_gateway(self.gateway.confirm, handle, payment_method, timeout=self.timeout)
        except TimeoutError:
            error = GatewayConfirmationError(
                "Payment confirmation timed out. Check your statement before trying again.")
        except ValueError as exc:
            error = GatewayConfirmationError(str(exc))
        except Exception:
            logger.exception("Payment confirmation failed unexpectedly")
            error = GatewayConfirmationError("Payment could not be confirmed, please try again")
        else:
            error = None
            if not result.success:
                error = GatewayConfirmationError(result.error_message or "Payment failed")

        if not self._is_current(payment):
            return payment
        if error is not None:
            return self._fail(payment, error)

        payment.outcome = "succeeded"
        payment.message = PROCESSING_MESSAGE
        self._transition(payment, "succeeded")
        logger.info(f"Payment confirmed with status {result.status}")
        return payment

    def abandon(self):
        """Drop everything this session holds; nothing external needs cleanup."""
        self.session.booking = None
        self.session.breakdown = None
        self.session.payment = PaymentSession()
        self.last_error = None
