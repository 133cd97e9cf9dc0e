"""
Simulated payment gateway.

Cards are exchanged for an opaque token when a payment method is saved; the
number itself never leaves ``tokenize``. Charges are keyed by an idempotency
key so a retried charge returns the original result instead of charging
twice.
"""
import asyncio
import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from storefront import config
from storefront.cards import normalize_card_number
from storefront.errors import NotFoundError, PaymentDeclinedError

logger = logging.getLogger(__name__)


# Test card numbers for development
TEST_CARD_NUMBERS = {
    "visa": "4242424242424242",
    "visa_debit": "4000056655665556",
    "mastercard": "5555555555554444",
    "amex": "378282246310005",
    "discover": "6011111111111117",
    "declined": "4000000000000002",
    "requires_authentication": "4000002500003155",
    "insufficient_funds": "4000000000009995",
}

# Token kind -> (decline code, customer-facing message)
DECLINES = {
    "chargeDeclined": ("card_declined", "Your card was declined."),
    "insufficientFunds": ("insufficient_funds", "Your card has insufficient funds."),
    "authenticationRequired": (
        "authentication_required",
        "Your card requires authentication. Please use another card.",
    ),
}

_TEST_CARD_KINDS = {
    TEST_CARD_NUMBERS["declined"]: "chargeDeclined",
    TEST_CARD_NUMBERS["insufficient_funds"]: "insufficientFunds",
    TEST_CARD_NUMBERS["requires_authentication"]: "authenticationRequired",
}


@dataclass
class Charge:
    id: str
    amount: int
    currency: str
    idempotency_key: str
    refunded: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class PaymentGateway(ABC):
    @abstractmethod
    def tokenize(self, card_number: str, exp_month: int, exp_year: int) -> str:
        ...

    @abstractmethod
    async def charge(self, *, amount: int, currency: str, token: str, idempotency_key: str) -> Charge:
        ...

    @abstractmethod
    async def refund(self, charge_id: str) -> Charge:
        ...


def token_kind(token: str) -> str:
    """``pm_<kind>_<random>`` -> ``<kind>``."""
    parts = token.split("_")
    return parts[1] if len(parts) >= 3 else "card"


class MockPaymentGateway(PaymentGateway):
    def __init__(
        self,
        success_rate: Optional[float] = None,
        latency: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        self.success_rate = config.PAYMENT_SUCCESS_RATE if success_rate is None else success_rate
        self.latency = config.PAYMENT_GATEWAY_LATENCY_SECONDS if latency is None else latency
        self._rng = rng or random.Random()
        self._charges: Dict[str, Charge] = {}
        self._in_flight: Dict[str, asyncio.Lock] = {}
        self.charge_calls = 0

    def tokenize(self, card_number: str, exp_month: int, exp_year: int) -> str:
        kind = _TEST_CARD_KINDS.get(normalize_card_number(card_number), "card")
        return f"pm_{kind}_{uuid.uuid4().hex[:16]}"

    async def charge(self, *, amount: int, currency: str, token: str, idempotency_key: str) -> Charge:
        # The key is taken before any await: a second call with the same key
        # waits for the first one and replays its charge.
        lock = self._in_flight.setdefault(idempotency_key, asyncio.Lock())
        async with lock:
            existing = self._charges.get(idempotency_key)
            if existing:
                logger.info("Replayed charge | key=%s | charge_id=%s", idempotency_key, existing.id)
                return existing
            return await self._charge(amount, currency, token, idempotency_key)

    async def _charge(self, amount: int, currency: str, token: str, idempotency_key: str) -> Charge:
        self.charge_calls += 1
        if self.latency:
            await asyncio.sleep(self.latency)

        kind = token_kind(token)
        if kind in DECLINES:
            code, message = DECLINES[kind]
            raise PaymentDeclinedError(message, decline_code=code)

        if self._rng.random() >= self.success_rate:
            raise PaymentDeclinedError(decline_code="processing_error")

        charge = Charge(
            id=f"ch_{uuid.uuid4().hex[:24]}",
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
        )
        self._charges[idempotency_key] = charge
        return charge

    async def refund(self, charge_id: str) -> Charge:
        for charge in self._charges.values():
            if charge.id == charge_id:
                charge.refunded = True
                return charge
        raise NotFoundError("Charge not found")
