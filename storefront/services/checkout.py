"""
Checkout orchestration.

The checkout is a server-side state machine persisted in
``checkout_sessions``::

    address -> payment -> review -> processing -> completed
                             ^            |
                             +-- failure -+

Placing an order charges first and creates the order last, so a failed
payment never leaves an order behind. Entering ``processing`` is an atomic
claim on the session: a second request for the same session (double click,
client retry) is refused while the first is in flight. A session left in
``processing`` (client gone, process restarted) can be claimed again once it
is stale; it reuses its idempotency key, so the customer is not charged
twice.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from storefront import config
from storefront.domain import (
    Address,
    AddressType,
    CheckoutConfirmation,
    CheckoutSession,
    CheckoutStep,
    Order,
    OrderAddress,
    OrderPayment,
    OrderSummary,
    PaymentIntent,
    PaymentIntentStatus,
    PaymentMethod,
    PaymentStatus,
)
from storefront.errors import (
    CartEmptyError,
    CheckoutInProgressError,
    CheckoutStateError,
    InvalidInputError,
    NotFoundError,
    OrderPlacementError,
    PaymentDeclinedError,
    PaymentRefundedError,
    StorefrontError,
)
from storefront.pricing import build_order_summary, to_minor_units
from storefront.repositories.base import CheckoutSessionRepository
from storefront.services.addresses import AddressService
from storefront.services.cart import CartService
from storefront.services.orders import OrderCreate, OrderService
from storefront.services.payment_methods import PaymentMethodService
from storefront.services.payments import (
    ConfirmResult,
    PaymentService,
    RunSync,
    new_idempotency_key,
    run_inline,
)

logger = logging.getLogger(__name__)

EDITABLE_STEPS = (CheckoutStep.address, CheckoutStep.payment, CheckoutStep.review)
PREVIOUS_STEP = {
    CheckoutStep.payment: CheckoutStep.address,
    CheckoutStep.review: CheckoutStep.payment,
}

# Failures after which nothing is left charged: the next attempt is a new
# payment and gets a new idempotency key.
SETTLED_FAILURES = (PaymentDeclinedError, OrderPlacementError, PaymentRefundedError)


@dataclass
class _Attempt:
    session: CheckoutSession
    shipping: Address
    billing: Address
    method: PaymentMethod
    summary: OrderSummary
    intent: PaymentIntent


class CheckoutService:
    def __init__(
        self,
        sessions: CheckoutSessionRepository,
        cart: CartService,
        addresses: AddressService,
        payment_methods: PaymentMethodService,
        payments: PaymentService,
        orders: OrderService,
        *,
        stale_after: Optional[int] = None,
        run_sync: RunSync = run_inline,
    ):
        self.sessions = sessions
        self.cart = cart
        self.addresses = addresses
        self.payment_methods = payment_methods
        self.payments = payments
        self.orders = orders
        self.stale_after = config.CHECKOUT_PROCESSING_STALE_SECONDS if stale_after is None else stale_after
        self.run_sync = run_sync

    # =====================================================
    # STEPS
    # =====================================================

    def start(self, user_id: str) -> CheckoutSession:
        """Open a checkout, or resume the one already open."""
        if not self.cart.get_cart(user_id).items:
            raise CartEmptyError()

        session = self.sessions.get_open(user_id)
        if session:
            return session

        # Defaults are pre-selected; the customer can still change them.
        shipping = self.addresses.get_default(user_id, AddressType.shipping)
        billing = self.addresses.get_default(user_id, AddressType.billing)
        method = self.payment_methods.get_default(user_id)

        now = datetime.now(timezone.utc)
        session = self.sessions.save(CheckoutSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            step=CheckoutStep.address,
            shipping_address_id=shipping.id if shipping else None,
            billing_address_id=billing.id if billing else None,
            payment_method_id=method.id if method else None,
            idempotency_key=new_idempotency_key(),
            created_at=now,
            updated_at=now,
        ))
        logger.info("Checkout started | user_id=%s | session_id=%s", user_id, session.id)
        return session

    def get(self, user_id: str, session_id: str) -> CheckoutSession:
        session = self.sessions.get(user_id, session_id)
        if not session:
            raise NotFoundError("Checkout session not found")
        return session

    def select_addresses(
        self,
        user_id: str,
        session_id: str,
        shipping_address_id: str,
        billing_address_id: str,
    ) -> CheckoutSession:
        session = self._editable(user_id, session_id)

        shipping = self.addresses.get(user_id, shipping_address_id)
        if shipping.type != AddressType.shipping:
            raise InvalidInputError("Please select a shipping address")

        billing = self.addresses.get(user_id, billing_address_id)
        if billing.type != AddressType.billing:
            raise InvalidInputError("Please select a billing address")

        return self._save(
            session,
            step=CheckoutStep.payment,
            shipping_address_id=shipping.id,
            billing_address_id=billing.id,
            last_error=None,
        )

    def select_payment_method(self, user_id: str, session_id: str, payment_method_id: str) -> CheckoutSession:
        session = self._editable(user_id, session_id)
        if session.step == CheckoutStep.address:
            raise CheckoutStateError("Please select a shipping and billing address first")

        method = self.payment_methods.get(user_id, payment_method_id)
        return self._save(
            session,
            step=CheckoutStep.review,
            payment_method_id=method.id,
            last_error=None,
        )

    def back(self, user_id: str, session_id: str) -> CheckoutSession:
        session = self._editable(user_id, session_id)
        previous = PREVIOUS_STEP.get(session.step)
        if not previous:
            raise CheckoutStateError("Already at the first step")
        return self._save(session, step=previous)

    # =====================================================
    # PLACE ORDER
    # =====================================================

    async def place_order(self, user_id: str, session_id: str) -> CheckoutConfirmation:
        run = self.run_sync
        session = await run(self.get, user_id, session_id)

        if session.step == CheckoutStep.completed:
            return await run(self.confirmation, user_id, session_id)

        if session.step not in (CheckoutStep.review, CheckoutStep.processing):
            raise CheckoutStateError("Please complete all required information")
        if not (session.shipping_address_id and session.billing_address_id and session.payment_method_id):
            raise CheckoutStateError("Please complete all required information")

        session = await run(self._claim, user_id, session_id)

        try:
            attempt = await run(self._begin_attempt, user_id, session)
            session = attempt.session

            result = await self.payments.confirm(user_id, attempt.intent.id, attempt.method.id)
            order = await self._create_order(user_id, attempt, result)
        except SETTLED_FAILURES as exc:
            await run(self._fail, session, exc, rotate_key=True)
            raise
        except StorefrontError as exc:
            await run(self._fail, session, exc)
            raise

        await run(self._complete, session, order)

        logger.info(
            "Checkout completed | user_id=%s | session_id=%s | order_id=%s",
            user_id, session.id, order.id,
        )
        return self._confirmation(order)

    def confirmation(self, user_id: str, session_id: str) -> CheckoutConfirmation:
        session = self.get(user_id, session_id)
        if session.step != CheckoutStep.completed or not session.order_id:
            raise CartEmptyError("No completed checkout to confirm")
        return self._confirmation(self.orders.get(user_id, session.order_id))

    # =====================================================
    # HELPERS
    # =====================================================

    def _claim(self, user_id: str, session_id: str) -> CheckoutSession:
        now = datetime.now(timezone.utc)
        claimed = self.sessions.claim(
            user_id,
            session_id,
            now=now,
            stale_before=now - timedelta(seconds=self.stale_after),
        )
        if claimed:
            return claimed

        logger.warning("Checkout already in progress | user_id=%s | session_id=%s", user_id, session_id)
        raise CheckoutInProgressError()

    def _begin_attempt(self, user_id: str, session: CheckoutSession) -> _Attempt:
        shipping = self.addresses.get(user_id, session.shipping_address_id)
        billing = self.addresses.get(user_id, session.billing_address_id)
        method = self.payment_methods.get(user_id, session.payment_method_id)

        summary, session = self._prepare_attempt(user_id, session)
        intent = self.payments.create_intent(user_id, summary, session.idempotency_key)
        session = self._save(session, payment_intent_id=intent.id, summary=summary)

        return _Attempt(session, shipping, billing, method, summary, intent)

    def _prepare_attempt(self, user_id: str, session: CheckoutSession) -> Tuple[OrderSummary, CheckoutSession]:
        existing = self.payments.find_intent(session.idempotency_key)

        # Refunded while the session sat in processing (reconciliation).
        if existing and existing.status == PaymentIntentStatus.canceled:
            raise PaymentRefundedError()

        # Already charged on an earlier attempt: finish with what was charged.
        if existing and existing.status == PaymentIntentStatus.succeeded and session.summary:
            return session.summary, session

        items = self.cart.get_cart(user_id).items
        if not items:
            raise CartEmptyError()
        summary = build_order_summary(items)

        # The cart changed since the last unfinished attempt.
        if existing and existing.amount != to_minor_units(summary.total):
            session = self._save(session, idempotency_key=new_idempotency_key())

        return summary, session

    async def _create_order(self, user_id: str, attempt: _Attempt, result: ConfirmResult) -> Order:
        run = self.run_sync
        payment = result.payment
        if not payment or payment.status != PaymentStatus.succeeded:
            raise PaymentRefundedError()
        if payment.order_id:
            return await run(self.orders.get, user_id, payment.order_id)

        intent_id = result.payment_intent.id
        method = attempt.method
        data = OrderCreate(
            items=attempt.summary.items,
            subtotal=attempt.summary.subtotal,
            shipping=attempt.summary.shipping,
            tax=attempt.summary.tax,
            total=attempt.summary.total,
            shipping_address=OrderAddress.model_validate(attempt.shipping.model_dump()),
            billing_address=OrderAddress.model_validate(attempt.billing.model_dump()),
            payment_method=OrderPayment(
                method=method.type.value,
                last4=method.last4,
                brand=method.brand,
                exp_month=method.exp_month,
                exp_year=method.exp_year,
            ),
            payment_intent_id=intent_id,
        )

        try:
            order = await run(self.orders.create, user_id, data)
        except Exception as exc:
            logger.exception(
                "Order creation failed after payment | user_id=%s | intent_id=%s",
                user_id, intent_id,
            )
            await self.payments.refund(intent_id, "order creation failed")
            raise OrderPlacementError() from exc

        await run(self.payments.attach_order, intent_id, order.id)
        return order

    def _complete(self, session: CheckoutSession, order: Order) -> None:
        self.cart.clear(session.user_id)
        self._save(session, step=CheckoutStep.completed, order_id=order.id, last_error=None)

    def _confirmation(self, order: Order) -> CheckoutConfirmation:
        return CheckoutConfirmation(
            order_id=order.id,
            order_number=order.order_number,
            summary=OrderSummary(
                subtotal=order.subtotal,
                shipping=order.shipping,
                tax=order.tax,
                total=order.total,
                items=order.items,
            ),
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            payment_method=order.payment_method,
            estimated_delivery=order.estimated_delivery,
        )

    def _editable(self, user_id: str, session_id: str) -> CheckoutSession:
        session = self.get(user_id, session_id)
        if session.step not in EDITABLE_STEPS:
            raise CheckoutStateError("Checkout can no longer be changed")
        return session

    def _fail(self, session: CheckoutSession, exc: StorefrontError, rotate_key: bool = False) -> None:
        # Reload: the attempt may have rotated the key after ``session`` was read.
        current = self.sessions.get(session.user_id, session.id) or session
        changes = {"step": CheckoutStep.review, "last_error": exc.message}
        if rotate_key:
            changes["idempotency_key"] = new_idempotency_key()
        self._save(current, **changes)
        logger.warning(
            "Checkout failed | user_id=%s | session_id=%s | error=%s",
            session.user_id, session.id, exc.message,
        )

    def _save(self, session: CheckoutSession, **changes) -> CheckoutSession:
        changes["updated_at"] = datetime.now(timezone.utc)
        return self.sessions.save(session.model_copy(update=changes))
