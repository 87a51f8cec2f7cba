import threading
from datetime import datetime, timedelta

import httpx
import pytest

from booking_schemas import BookingRequest, BookingSession
from gateway_tools import MockGateway
from payment_manager import AuthorizationClient, PaymentOrchestrator
from server.app import create_app

# 2024-06-04 is a Tuesday, 2024-06-07 a Friday, 2024-06-09 a Sunday.
TUESDAY = datetime(2024, 6, 4)
FRIDAY = datetime(2024, 6, 7)
SATURDAY = datetime(2024, 6, 8)
SUNDAY = datetime(2024, 6, 9)


def make_booking(day=TUESDAY, start_hour=10, hours=3.0, guests=10, **add_ons):
    start = day.replace(hour=start_hour)
    return BookingRequest(start=start, end=start + timedelta(hours=hours), guests=guests, **add_ons)


class BlockingGateway(MockGateway):
    """Confirmation blocks until `release` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = threading.Event()

    def confirm(self, client_secret, payment_method):
        self.release.wait(5)
        return super().confirm(client_secret, payment_method)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def gateway():
    return MockGateway()


@pytest.fixture
def server(gateway):
    return create_app(gateway=gateway, tax_enabled=False, timeout=5)


@pytest.fixture
async def client(server):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=server), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def authorizer(server):
    return AuthorizationClient(base_url="http://test", transport=httpx.ASGITransport(app=server))


@pytest.fixture
def orchestrator(gateway, authorizer):
    return PaymentOrchestrator(BookingSession(), gateway, authorizer=authorizer, timeout=5)
