import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from storefront import config
from storefront.domain import (
    OrderSummary,
    Pagination,
    Payment,
    PaymentIntent,
    PaymentIntentStatus,
    PaymentStatus,
)
from storefront.errors import (
    BusinessRuleError,
    ConflictError,
    GatewayError,
    GatewayTimeoutError,
    NotFoundError,
    PaymentDeclinedError,
    StorefrontError,
)
from storefront.gateway import Charge, PaymentGateway
from storefront.pricing import to_minor_units
from storefront.repositories.base import (
    PaymentIntentRepository,
    PaymentMethodRepository,
    PaymentRepository,
)

logger = logging.getLogger(__name__)


def new_idempotency_key() -> str:
    return uuid.uuid4().hex


async def run_inline(func: Callable[..., Any], *args, **kwargs) -> Any:
    return func(*args, **kwargs)


# Runs one blocking storage call from async code. The API passes
# ``run_in_threadpool`` so SQL work stays off the event loop.
RunSync = Callable[..., Awaitable[Any]]


@dataclass
class ConfirmResult:
    success: bool
    payment_intent: PaymentIntent
    payment: Optional[Payment] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.payment.order_id if self.payment else None


class PaymentService:
    """
    Payment intents and their confirmation against the gateway.

    An intent is created once per idempotency key. Confirmation charges the
    gateway with the intent's key, so a retried or repeated confirmation
    never charges twice.
    """

    def __init__(
        self,
        intents: PaymentIntentRepository,
        payments: PaymentRepository,
        payment_methods: PaymentMethodRepository,
        gateway: PaymentGateway,
        *,
        confirm_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        run_sync: RunSync = run_inline,
    ):
        self.intents = intents
        self.payments = payments
        self.payment_methods = payment_methods
        self.gateway = gateway
        self.confirm_timeout = config.PAYMENT_CONFIRM_TIMEOUT_SECONDS if confirm_timeout is None else confirm_timeout
        self.max_attempts = config.PAYMENT_CONFIRM_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.retry_backoff = config.PAYMENT_RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff
        self.run_sync = run_sync

    # =====================================================
    # INTENTS
    # =====================================================

    def create_intent(
        self,
        user_id: str,
        summary: OrderSummary,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        amount = to_minor_units(summary.total)
        if amount <= 0:
            raise BusinessRuleError("Order total must be greater than zero")

        if idempotency_key:
            existing = self.intents.get_by_idempotency_key(idempotency_key)
            if existing:
                if existing.user_id != user_id or existing.amount != amount:
                    raise ConflictError("Idempotency key was already used for a different payment")
                return existing
        else:
            idempotency_key = new_idempotency_key()

        now = datetime.now(timezone.utc)
        intent_id = f"pi_{uuid.uuid4().hex[:24]}"
        intent = PaymentIntent(
            id=intent_id,
            user_id=user_id,
            client_secret=f"{intent_id}_secret_{secrets.token_urlsafe(12)}",
            amount=amount,
            currency=config.CURRENCY,
            status=PaymentIntentStatus.requires_payment_method,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        saved = self.intents.save(intent)

        logger.info(
            "Payment intent created | user_id=%s | intent_id=%s | amount=%s | currency=%s",
            user_id, saved.id, saved.amount, saved.currency,
        )
        return saved

    def find_intent(self, idempotency_key: str) -> Optional[PaymentIntent]:
        return self.intents.get_by_idempotency_key(idempotency_key)

    def get(self, user_id: str, intent_id: str) -> PaymentIntent:
        intent = self.intents.get(intent_id)
        if not intent or intent.user_id != user_id:
            raise NotFoundError("Payment intent not found")
        return intent

    # =====================================================
    # PAYMENTS
    # =====================================================

    def get_payment(self, user_id: str, payment_id: str) -> Payment:
        payment = self.payments.get(payment_id)
        if not payment or payment.user_id != user_id:
            raise NotFoundError("Payment not found")
        return payment

    def history(self, user_id: str, page: int = 1, limit: int = 20) -> Tuple[List[Payment], Pagination]:
        payments, total = self.payments.list_for_user(user_id, (page - 1) * limit, limit)
        return payments, Pagination.of(page, limit, total)

    # =====================================================
    # CONFIRMATION
    # =====================================================

    async def confirm(self, user_id: str, intent_id: str, payment_method_id: str) -> ConfirmResult:
        intent = await self.run_sync(self.get, user_id, intent_id)

        if intent.status == PaymentIntentStatus.succeeded:
            payment = await self.run_sync(self.payments.get_by_intent, intent.id)
            return ConfirmResult(True, intent, payment)
        if intent.status == PaymentIntentStatus.canceled:
            raise BusinessRuleError("Payment intent was canceled")

        method = await self.run_sync(self.payment_methods.get, user_id, payment_method_id)
        if not method:
            raise NotFoundError("Payment method not found")

        intent = await self.run_sync(
            self._update_intent,
            intent,
            status=PaymentIntentStatus.processing,
            payment_method_id=method.id,
            last_error=None,
        )

        try:
            charge = await self._charge_with_retry(intent, method.provider_token)
        except PaymentDeclinedError as exc:
            status = (
                PaymentIntentStatus.requires_action
                if exc.decline_code == "authentication_required"
                else PaymentIntentStatus.requires_payment_method
            )
            await self.run_sync(self._update_intent, intent, status=status, last_error=exc.message)
            await self.run_sync(self._record_payment, intent, PaymentStatus.failed)
            logger.warning(
                "Payment declined | user_id=%s | intent_id=%s | code=%s",
                user_id, intent.id, exc.decline_code,
            )
            raise
        except GatewayError as exc:
            # Outcome unknown; confirming again with the same key is safe.
            await self.run_sync(
                self._update_intent,
                intent,
                status=PaymentIntentStatus.requires_confirmation,
                last_error=exc.message,
            )
            logger.error("Payment confirmation failed | user_id=%s | intent_id=%s | error=%s", user_id, intent.id, exc)
            raise

        intent = await self.run_sync(self._update_intent, intent, status=PaymentIntentStatus.succeeded, last_error=None)
        payment = await self.run_sync(
            self._record_payment, intent, PaymentStatus.succeeded, provider_charge_id=charge.id
        )

        logger.info(
            "Payment succeeded | user_id=%s | intent_id=%s | charge_id=%s",
            user_id, intent.id, charge.id,
        )
        return ConfirmResult(True, intent, payment)

    async def _charge_with_retry(self, intent: PaymentIntent, token: str) -> Charge:
        """
        Charge with a timeout, retrying only timeouts and gateway errors.
        Declines are never retried.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(
                    self.gateway.charge(
                        amount=intent.amount,
                        currency=intent.currency,
                        token=token,
                        idempotency_key=intent.idempotency_key,
                    ),
                    timeout=self.confirm_timeout,
                )
            except asyncio.TimeoutError as exc:
                error: GatewayError = GatewayTimeoutError()
                cause: Exception = exc
            except GatewayError as exc:
                error = exc
                cause = exc

            if attempt >= self.max_attempts:
                raise error from cause

            delay = self.retry_backoff * (2 ** (attempt - 1))
            logger.warning(
                "Retrying charge | intent_id=%s | attempt=%s | delay=%.2fs | error=%s",
                intent.id, attempt, delay, error,
            )
            await asyncio.sleep(delay)

    # =====================================================
    # LEDGER / COMPENSATION
    # =====================================================

    def _mark_refunded(self, payment: Payment) -> Payment:
        now = datetime.now(timezone.utc)
        intent = self.intents.get(payment.payment_intent_id)
        if intent:
            self.intents.save(intent.model_copy(update={"status": PaymentIntentStatus.canceled, "updated_at": now}))
        return self.payments.save(
            payment.model_copy(update={"status": PaymentStatus.refunded, "updated_at": now})
        )

    def attach_order(self, intent_id: str, order_id: str) -> Payment:
        payment = self.payments.get_by_intent(intent_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return self.payments.save(
            payment.model_copy(update={"order_id": order_id, "updated_at": datetime.now(timezone.utc)})
        )

    async def refund(self, intent_id: str, reason: Optional[str] = None) -> Payment:
        """
        Refund a succeeded payment and cancel its intent, so the intent can
        never again be treated as paid.
        """
        payment = await self.run_sync(self.payments.get_by_intent, intent_id)
        if not payment or payment.status != PaymentStatus.succeeded:
            raise BusinessRuleError("Only succeeded payments can be refunded")

        await self.gateway.refund(payment.provider_charge_id)
        refunded = await self.run_sync(self._mark_refunded, payment)
        logger.warning(
            "Payment refunded | intent_id=%s | payment_id=%s | reason=%s",
            intent_id, payment.id, reason,
        )
        return refunded

    async def refund_payment(self, payment_id: str, reason: Optional[str] = None) -> Payment:
        """Privileged refund of any succeeded payment."""
        payment = await self.run_sync(self.payments.get, payment_id)
        if not payment:
            raise NotFoundError("Payment not found")
        return await self.refund(payment.payment_intent_id, reason)

    async def reconcile(self, grace_seconds: Optional[int] = None) -> List[Payment]:
        """Refund succeeded payments that never got an order."""
        grace = config.RECONCILE_GRACE_SECONDS if grace_seconds is None else grace_seconds
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=grace)

        refunded = []
        for payment in await self.run_sync(self.payments.list_orphaned, cutoff):
            try:
                refunded.append(await self.refund(payment.payment_intent_id, "no order"))
            except StorefrontError as exc:
                logger.error(
                    "Reconciliation refund failed | payment_id=%s | error=%s",
                    payment.id, exc,
                )
        logger.info("Reconciliation finished | refunded=%s", len(refunded))
        return refunded

    # =====================================================
    # HELPERS
    # =====================================================

    def _update_intent(self, intent: PaymentIntent, **changes) -> PaymentIntent:
        changes["updated_at"] = datetime.now(timezone.utc)
        return self.intents.save(intent.model_copy(update=changes))

    def _record_payment(
        self,
        intent: PaymentIntent,
        status: PaymentStatus,
        provider_charge_id: Optional[str] = None,
    ) -> Payment:
        now = datetime.now(timezone.utc)
        payment = self.payments.get_by_intent(intent.id)
        if payment:
            payment = payment.model_copy(update={
                "status": status,
                "amount": intent.amount,
                "provider_charge_id": provider_charge_id or payment.provider_charge_id,
                "updated_at": now,
            })
        else:
            payment = Payment(
                id=str(uuid.uuid4()),
                user_id=intent.user_id,
                payment_intent_id=intent.id,
                amount=intent.amount,
                currency=intent.currency,
                status=status,
                provider_charge_id=provider_charge_id,
                created_at=now,
                updated_at=now,
            )
        return self.payments.save(payment)
