import os
from decimal import Decimal


# ======================================================
# CORE
# ======================================================

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is not set")

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    raise RuntimeError("SECRET_KEY must be set in environment variables")

ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "true").lower() == "true"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# ======================================================
# PRICING
# ======================================================

CURRENCY = os.getenv("CURRENCY", "usd")

# Shipping is free only when the subtotal is strictly above the threshold.
FREE_SHIPPING_THRESHOLD = Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "50"))
SHIPPING_FEE = Decimal(os.getenv("SHIPPING_FEE", "9.99"))
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.08"))

# Single source of truth for the delivery estimate shown on orders
# and on the checkout confirmation.
ESTIMATED_DELIVERY_DAYS = int(os.getenv("ESTIMATED_DELIVERY_DAYS", "7"))


# ======================================================
# PAYMENT GATEWAY (SIMULATED)
# ======================================================

PAYMENT_SUCCESS_RATE = float(os.getenv("PAYMENT_SUCCESS_RATE", "0.95"))
PAYMENT_GATEWAY_LATENCY_SECONDS = float(os.getenv("PAYMENT_GATEWAY_LATENCY_SECONDS", "2.0"))
PAYMENT_CONFIRM_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_CONFIRM_TIMEOUT_SECONDS", "10"))
PAYMENT_CONFIRM_MAX_ATTEMPTS = int(os.getenv("PAYMENT_CONFIRM_MAX_ATTEMPTS", "3"))
PAYMENT_RETRY_BACKOFF_SECONDS = float(os.getenv("PAYMENT_RETRY_BACKOFF_SECONDS", "0.5"))

# A checkout left in "processing" longer than this (client gone, process
# restarted) may be placed again. Must exceed the longest confirmation:
# timeout * attempts plus backoff.
CHECKOUT_PROCESSING_STALE_SECONDS = int(os.getenv("CHECKOUT_PROCESSING_STALE_SECONDS", "120"))

# Succeeded payments without an order are refunded by reconciliation
# only once they are older than this.
RECONCILE_GRACE_SECONDS = int(os.getenv("RECONCILE_GRACE_SECONDS", "300"))
