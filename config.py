import os
from dotenv import load_dotenv

# Reads a local .env if present; real environment variables win.
load_dotenv()

STRIPE_API_KEY = os.getenv("STRIPE_API_KEY")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY")
STRIPE_TAX_ENABLED = os.getenv("STRIPE_TAX_ENABLED", "false").lower() in ("1", "true", "yes")

PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
PAYMENT_RETURN_URL = os.getenv("PAYMENT_RETURN_URL", "http://localhost:3000/payment-success")
PAYMENT_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_TIMEOUT_SECONDS", "15"))

BOOKING_SERVER_URL = os.getenv("BOOKING_SERVER_URL", "http://localhost:8000")
PAYMENT_INTENT_PATH = "/api/create-payment-intent"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def require_secret_key() -> str:
    """
    Server-side only. Raises when the gateway secret is not configured so the
    server fails loudly instead of sending unauthenticated requests.
    """
    if not STRIPE_API_KEY:
        raise RuntimeError("STRIPE_API_KEY is not configured")
    return STRIPE_API_KEY


def require_publishable_key() -> str:
    if not STRIPE_PUBLISHABLE_KEY:
        raise RuntimeError("STRIPE_PUBLISHABLE_KEY is not configured")
    return STRIPE_PUBLISHABLE_KEY
