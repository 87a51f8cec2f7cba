"""
Run this script to see a full mocked booking flow:
 - build a BookingRequest from form-style input
 - confirm_details() -> price breakdown and total
 - request_authorization() against the in-process booking server
 - confirm_payment() with a test payment method
 - print final results
"""

import anyio
import httpx
from loguru import logger

from booking_schemas import BookingRequest, BookingSession
from gateway_tools import MockGateway
from logging_config import setup_logging
from payment_manager import AuthorizationClient, PaymentOrchestrator
from server.app import create_app


async def main():
    setup_logging()

    gateway = MockGateway()
    server = create_app(gateway=gateway, tax_enabled=False)
    authorizer = AuthorizationClient(base_url="http://booking.test", transport=httpx.ASGITransport(app=server))

    form = {
        "startdate": "2024-06-07",
        "starttime": "18:00",
        "enddate": "2024-06-07",
        "endtime": "23:30",
        "guests": "32",
        "extraRoom": True,
        "photographer": False,
        "allInclusive": True,
        "eventPlanning": "Birthday dinner, DJ from 20:00",
    }
    booking = BookingRequest.from_form(form)

    session = BookingSession()
    orchestrator = PaymentOrchestrator(session, gateway, authorizer=authorizer)

    print("=== Estimate ===")
    breakdown = orchestrator.confirm_details(booking)
    print(f"Base rate:       ${breakdown.base_rate:.2f}")
    print(f"Extra guest fee: ${breakdown.guest_fee:.2f}")
    print(f"Cleaning fee:    ${breakdown.cleaning_fee:.2f}")
    for name, cost in breakdown.add_ons.items():
        print(f"{name[0].upper() + name[1:]}: ${cost:.2f}")
    print(f"Total balance:   ${breakdown.total:.2f}")

    print("\n=== Authorization ===")
    payment = await orchestrator.request_authorization()
    print(f"state={payment.state}, authorization={payment.authorization}, message={payment.message}")
    if not orchestrator.can_pay:
        logger.error("No payment authorization, stopping")
        return

    print("\n=== Confirmation ===")
    payment = await orchestrator.confirm_payment("pm_card_visa")
    print(f"state={payment.state}, outcome={payment.outcome}, message={payment.message}")
    print(f"gateway saw amount={gateway.created[-1][0]} {gateway.created[-1][1]}")


if __name__ == "__main__":
    anyio.run(main)
