from typing import Optional

import stripe
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

import config
from booking_schemas import ErrorResponse, PaymentIntentRequest, PaymentIntentResponse
from errors import BookingError, GatewayRequestError, ServerValidationError
from gateway_tools import PaymentGateway, call_gateway
from logging_config import setup_logging
from payments.checkout import StripeGateway, calculate_tax
from pricing import compute_price, line_items, to_minor_units


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request data") if errors else "Invalid request data"
    # model validators surface as "Value error, <text>"
    message = message.removeprefix("Value error, ")
    logger.info(f"{request.url.path} rejected: {message}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


def resolve_amount(payload: PaymentIntentRequest) -> int:
    """
    Work out the amount to charge, in cents.

    When the booking parameters are present the server's own pricing wins and
    any client-sent figure must agree with it. Otherwise the flat amount, or
    the client total, is used as-is.
    """
    if payload.booking is not None:
        _, total = compute_price(payload.booking)
        server_amount = to_minor_units(total)
        claimed = []
        if payload.total_price is not None:
            claimed.append(to_minor_units(payload.total_price))
        if payload.amount is not None:
            claimed.append(payload.amount)
        if any(value != server_amount for value in claimed):
            raise ServerValidationError("Price mismatch: please review the updated estimate before paying")
        return server_amount

    if payload.amount is not None:
        return payload.amount

    amount = to_minor_units(payload.total_price)
    if amount <= 0:
        raise ServerValidationError("Amount must be greater than zero")
    return amount


def create_app(gateway: Optional[PaymentGateway] = None, tax_enabled: Optional[bool] = None,
               timeout: Optional[float] = None) -> FastAPI:
    app = FastAPI(title="Event Space Booking")
    app.state.gateway = gateway or StripeGateway()
    app.state.tax_enabled = config.STRIPE_TAX_ENABLED if tax_enabled is None else tax_enabled
    app.state.timeout = timeout or config.PAYMENT_TIMEOUT_SECONDS

    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.post(
        config.PAYMENT_INTENT_PATH,
        response_model=PaymentIntentResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def create_payment_intent(payload: PaymentIntentRequest, request: Request):
        amount = resolve_amount(payload)
        currency = (payload.currency or config.PAYMENT_CURRENCY).lower()
        items = payload.items
        if payload.booking is not None:
            # tax is computed on server-priced components only
            items = line_items(compute_price(payload.booking)[0])

        metadata = {"pricing": "server" if payload.booking is not None else "client"}
        state = request.app.state
        try:
            if state.tax_enabled and items:
                tax = await call_gateway(calculate_tax, items, currency, config.require_secret_key(),
                                         timeout=state.timeout)
                metadata["tax_calculation"] = tax.id
            result = await call_gateway(state.gateway.create_authorization, amount, currency, metadata,
                                        timeout=state.timeout)
        except TimeoutError:
            raise GatewayRequestError("Payment gateway timed out, please try again", status_code=504)
        except stripe.StripeError as exc:
            raise GatewayRequestError(exc.user_message or str(exc), status_code=500)
        except Exception as exc:
            logger.exception("Payment intent creation failed unexpectedly")
            raise GatewayRequestError(str(exc) or "Payment gateway error", status_code=500)

        if not result.success:
            raise GatewayRequestError(result.error_message or "Payment gateway error", status_code=500)

        logger.info(f"Issued payment authorization for {amount} {currency} ({metadata['pricing']} pricing)")
        return PaymentIntentResponse(client_secret=result.client_secret)

    return app


app = create_app()


if __name__ == "__main__":
    setup_logging()
    uvicorn.run(app, host="0.0.0.0", port=8000)
