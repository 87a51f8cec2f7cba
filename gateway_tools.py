import itertools
import uuid
from typing import Dict, Optional, Protocol

import anyio


class GatewayResponse:
    def __init__(self, success: bool, client_secret: str = None, status: str = None,
                 error_message: str = None, raw: dict = None):
        self.success = success
        self.client_secret = client_secret
        self.status = status
        self.error_message = error_message
        self.raw = raw or {}


class PaymentGateway(Protocol):
    """
    What the booking flow needs from a payment processor.
    create_authorization runs server-side with the secret key; confirm runs
    with client-safe credentials only.
    """

    def create_authorization(self, amount: int, currency: str, metadata: Dict[str, str]) -> GatewayResponse:
        ...

    def confirm(self, client_secret: str, payment_method: str) -> GatewayResponse:
        ...


def intent_id_from_secret(client_secret: str) -> str:
    """PaymentIntent client secrets look like '<intent id>_secret_<nonce>'."""
    if not isinstance(client_secret, str):
        raise ValueError("Malformed client secret")
    intent_id, sep, _ = client_secret.partition("_secret_")
    if not sep or not intent_id:
        raise ValueError("Malformed client secret")
    return intent_id


class MockGateway:
    """
    Deterministic in-process gateway for demos and tests.
    Set fail_creation / decline_with to simulate gateway errors.
    """

    def __init__(self, fail_creation: Optional[str] = None, decline_with: Optional[str] = None):
        self.fail_creation = fail_creation
        self.decline_with = decline_with
        self.created = []       # (amount, currency, metadata) per create call
        self.confirmed = []     # client secrets that reached confirm()
        self._ids = itertools.count(1)

    def create_authorization(self, amount, currency, metadata):
        self.created.append((amount, currency, dict(metadata)))
        if self.fail_creation:
            return GatewayResponse(success=False, error_message=self.fail_creation,
                                   raw={"error": self.fail_creation})
        intent_id = f"pi_mock_{next(self._ids)}"
        secret = f"{intent_id}_secret_{uuid.uuid4().hex[:12]}"
        return GatewayResponse(success=True, client_secret=secret, status="requires_payment_method",
                               raw={"id": intent_id, "amount": amount, "currency": currency})

    def confirm(self, client_secret, payment_method):
        self.confirmed.append(client_secret)
        intent_id = intent_id_from_secret(client_secret)
        if self.decline_with:
            return GatewayResponse(success=False, status="requires_payment_method",
                                   error_message=self.decline_with,
                                   raw={"id": intent_id, "error": self.decline_with})
        return GatewayResponse(success=True, client_secret=client_secret, status="succeeded",
                               raw={"id": intent_id, "payment_method": payment_method})


async def call_gateway(func, *args, timeout: float):
    """
    Run a blocking gateway call in a worker thread, bounded by `timeout`
    seconds. Raises TimeoutError when the gateway stalls; the worker thread
    is abandoned rather than waited for.
    """
    with anyio.fail_after(timeout):
        return await anyio.to_thread.run_sync(lambda: func(*args), abandon_on_cancel=True)
