from types import SimpleNamespace

import httpx
import pytest

import config
import server.app as server_app
from conftest import make_booking
from gateway_tools import MockGateway
from payments.checkout import StripeGateway
from server.app import create_app

PATH = config.PAYMENT_INTENT_PATH


@pytest.mark.anyio
async def test_non_post_is_method_not_allowed(client):
    resp = await client.get(PATH)

    assert resp.status_code == 405
    assert resp.headers["allow"] == "POST"


@pytest.mark.anyio
async def test_missing_fields_rejected_before_gateway(client, gateway):
    resp = await client.post(PATH, json={"totalPrice": 455})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid request data"}
    assert gateway.created == []


@pytest.mark.anyio
async def test_flat_amount_issues_client_secret(client, gateway):
    resp = await client.post(PATH, json={"amount": 1000})

    assert resp.status_code == 200
    assert resp.json()["clientSecret"].startswith("pi_mock_1_secret_")
    amount, currency, metadata = gateway.created[0]
    assert (amount, currency) == (1000, "usd")
    assert metadata == {"pricing": "client"}


@pytest.mark.anyio
async def test_items_and_total_price_converted_to_cents(client, gateway):
    resp = await client.post(
        PATH, json={"items": [{"id": "base_rate", "amount": 30000}], "totalPrice": 455}
    )

    assert resp.status_code == 200
    assert gateway.created[0][0] == 45500


@pytest.mark.anyio
async def test_zero_total_rejected(client, gateway):
    resp = await client.post(PATH, json={"items": [{"id": "base_rate", "amount": 0}], "totalPrice": 0})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Amount must be greater than zero"
    assert gateway.created == []


@pytest.mark.anyio
async def test_booking_is_repriced_on_the_server(client, gateway):
    booking = make_booking(hours=3, guests=25).model_dump(mode="json")

    resp = await client.post(PATH, json={"amount": 45500, "items": [], "booking": booking})

    assert resp.status_code == 200
    assert gateway.created[0][0] == 45500
    assert gateway.created[0][2]["pricing"] == "server"


@pytest.mark.anyio
async def test_tampered_client_total_is_rejected(client, gateway):
    booking = make_booking(hours=3, guests=25).model_dump(mode="json")

    resp = await client.post(PATH, json={"amount": 100, "booking": booking})

    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Price mismatch")
    assert gateway.created == []


@pytest.mark.anyio
async def test_invalid_booking_payload_is_client_error(client, gateway):
    booking = make_booking().model_dump(mode="json")
    booking["guests"] = 99

    resp = await client.post(PATH, json={"amount": 1000, "booking": booking})

    assert resp.status_code == 400
    assert "error" in resp.json()
    assert gateway.created == []


@pytest.mark.anyio
async def test_gateway_error_is_surfaced_verbatim():
    app = create_app(gateway=MockGateway(fail_creation="Invalid API Key provided: sk_test_****"), tax_enabled=False)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post(PATH, json={"amount": 1000})

    assert resp.status_code == 500
    assert resp.json() == {"error": "Invalid API Key provided: sk_test_****"}


@pytest.mark.anyio
async def test_tax_calculation_attached_to_metadata(monkeypatch, gateway):
    calls = []

    def fake_calculate_tax(items, currency, api_key):
        calls.append((items, currency, api_key))
        return SimpleNamespace(id="taxcalc_123")

    monkeypatch.setattr(config, "STRIPE_API_KEY", "sk_test_server")
    monkeypatch.setattr(server_app, "calculate_tax", fake_calculate_tax)

    app = create_app(gateway=gateway, tax_enabled=True)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post(
            PATH, json={"items": [{"id": "base_rate", "amount": 30000}], "totalPrice": 300}
        )

    assert resp.status_code == 200
    assert calls[0][1:] == ("usd", "sk_test_server")
    assert gateway.created[0][2]["tax_calculation"] == "taxcalc_123"


@pytest.mark.anyio
async def test_missing_secret_key_returns_json_error(monkeypatch):
    monkeypatch.setattr(config, "STRIPE_API_KEY", None)

    app = create_app(gateway=StripeGateway(), tax_enabled=False)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post(PATH, json={"amount": 1000})

    assert resp.status_code == 500
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json() == {"error": "STRIPE_API_KEY is not configured"}


@pytest.mark.anyio
async def test_tax_uses_server_priced_items_when_booking_sent(monkeypatch, gateway):
    calls = []

    def fake_calculate_tax(items, currency, api_key):
        calls.append(items)
        return SimpleNamespace(id="taxcalc_456")

    monkeypatch.setattr(config, "STRIPE_API_KEY", "sk_test_server")
    monkeypatch.setattr(server_app, "calculate_tax", fake_calculate_tax)
    booking = make_booking(hours=3, guests=25).model_dump(mode="json")

    app = create_app(gateway=gateway, tax_enabled=True)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        resp = await ac.post(
            PATH, json={"amount": 45500, "items": [{"id": "base_rate", "amount": 1}], "booking": booking}
        )

    assert resp.status_code == 200
    assert {item.id: item.amount for item in calls[0]} == {
        "base_rate": 30000,
        "guest_fee": 3000,
        "cleaning_fee": 12500,
    }
