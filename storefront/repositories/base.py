"""
Storage interfaces used by the services.

Two implementations exist: ``memory`` (process-local, used by the service
tests) and ``sql`` (SQLAlchemy, used by the API). Every read is scoped to an
owner where the record has one; a record owned by someone else is treated
as missing.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from storefront.domain import (
    Address,
    CartItem,
    CheckoutSession,
    Order,
    OrderStats,
    OrderStatus,
    Payment,
    PaymentIntent,
    PaymentMethod,
)


class AddressRepository(ABC):
    @abstractmethod
    def list_for_user(self, user_id: str) -> List[Address]:
        ...

    @abstractmethod
    def get(self, user_id: str, address_id: str) -> Optional[Address]:
        ...

    @abstractmethod
    def save(self, address: Address) -> Address:
        """
        Insert or update.

        When ``address.is_default`` is set, every other address of the same
        owner and type loses its default flag in the same transaction.
        """

    @abstractmethod
    def delete(self, user_id: str, address_id: str) -> bool:
        ...


class PaymentMethodRepository(ABC):
    @abstractmethod
    def list_for_user(self, user_id: str) -> List[PaymentMethod]:
        """Active payment methods, newest first."""

    @abstractmethod
    def get(self, user_id: str, payment_method_id: str) -> Optional[PaymentMethod]:
        """Active payment method or None."""

    @abstractmethod
    def save(self, payment_method: PaymentMethod) -> PaymentMethod:
        """
        Insert or update.

        When ``payment_method.is_default`` is set, every other payment
        method of the same owner loses its default flag in the same
        transaction.
        """


class PaymentIntentRepository(ABC):
    @abstractmethod
    def get(self, intent_id: str) -> Optional[PaymentIntent]:
        ...

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[PaymentIntent]:
        ...

    @abstractmethod
    def save(self, intent: PaymentIntent) -> PaymentIntent:
        ...


class PaymentRepository(ABC):
    @abstractmethod
    def get(self, payment_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    def get_by_intent(self, intent_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    def list_for_user(self, user_id: str, offset: int, limit: int) -> Tuple[List[Payment], int]:
        """One page of a user's payments, newest first, and the total count."""

    @abstractmethod
    def list_orphaned(self, before: datetime) -> List[Payment]:
        """Succeeded payments with no order, last updated before ``before``."""

    @abstractmethod
    def save(self, payment: Payment) -> Payment:
        ...


class OrderRepository(ABC):
    @abstractmethod
    def list_for_user(self, user_id: str) -> List[Order]:
        """Newest first."""

    @abstractmethod
    def search(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        """One page of orders, newest first, and the total count of matches."""

    @abstractmethod
    def stats(self) -> OrderStats:
        ...

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def next_sequence(self) -> int:
        ...

    @abstractmethod
    def save(self, order: Order) -> Order:
        ...


class CartRepository(ABC):
    @abstractmethod
    def list_items(self, user_id: str) -> List[CartItem]:
        ...

    @abstractmethod
    def get_item(self, user_id: str, item_id: str) -> Optional[CartItem]:
        ...

    @abstractmethod
    def save_item(self, user_id: str, item: CartItem) -> CartItem:
        ...

    @abstractmethod
    def delete_item(self, user_id: str, item_id: str) -> bool:
        ...

    @abstractmethod
    def clear(self, user_id: str) -> None:
        ...


class CheckoutSessionRepository(ABC):
    @abstractmethod
    def get(self, user_id: str, session_id: str) -> Optional[CheckoutSession]:
        ...

    @abstractmethod
    def get_open(self, user_id: str) -> Optional[CheckoutSession]:
        """Most recent session that has not completed."""

    @abstractmethod
    def claim(
        self,
        user_id: str,
        session_id: str,
        *,
        now: datetime,
        stale_before: datetime,
    ) -> Optional[CheckoutSession]:
        """
        Move a session to ``processing`` if, and only if, it is in ``review``
        or has been in ``processing`` since before ``stale_before``. The check
        and the update are one atomic step; ``None`` means another request
        holds the session.
        """

    @abstractmethod
    def save(self, session: CheckoutSession) -> CheckoutSession:
        ...


@dataclass
class Repositories:
    addresses: AddressRepository
    payment_methods: PaymentMethodRepository
    payment_intents: PaymentIntentRepository
    payments: PaymentRepository
    orders: OrderRepository
    carts: CartRepository
    checkout_sessions: CheckoutSessionRepository
