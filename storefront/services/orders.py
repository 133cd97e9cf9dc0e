import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel

from storefront import config
from storefront.domain import (
    Order,
    OrderAddress,
    OrderItem,
    OrderPayment,
    OrderStats,
    OrderStatus,
    Pagination,
)
from storefront.errors import BusinessRuleError, InvalidInputError, NotFoundError
from storefront.repositories.base import OrderRepository

logger = logging.getLogger(__name__)

CANCELLABLE = (OrderStatus.pending, OrderStatus.processing)
TERMINAL = (OrderStatus.delivered, OrderStatus.cancelled)
NEXT_STATUS = {
    OrderStatus.pending: OrderStatus.processing,
    OrderStatus.processing: OrderStatus.shipped,
    OrderStatus.shipped: OrderStatus.delivered,
}


class OrderCreate(BaseModel):
    items: List[OrderItem]
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    shipping_address: OrderAddress
    billing_address: OrderAddress
    payment_method: OrderPayment
    payment_intent_id: Optional[str] = None
    notes: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    def __init__(
        self,
        repo: OrderRepository,
        *,
        delivery_days: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repo = repo
        self.delivery_days = config.ESTIMATED_DELIVERY_DAYS if delivery_days is None else delivery_days
        self._clock = clock

    def create(self, user_id: str, data: OrderCreate) -> Order:
        if not data.items:
            raise InvalidInputError("Order must contain at least one item")

        now = self._clock()
        order = Order(
            id=str(uuid.uuid4()),
            user_id=user_id,
            order_number=f"ORD-{now.year}-{self.repo.next_sequence():06d}",
            status=OrderStatus.pending,
            created_at=now,
            updated_at=now,
            estimated_delivery=(now + timedelta(days=self.delivery_days)).date(),
            # Deep copies: later edits to the source records never reach the order.
            **data.model_copy(deep=True).model_dump(),
        )
        saved = self.repo.save(order)

        logger.info(
            "Order created | user_id=%s | order_id=%s | order_number=%s | total=%s",
            user_id, saved.id, saved.order_number, saved.total,
        )
        return saved

    def get(self, user_id: str, order_id: str) -> Order:
        order = self.repo.get(order_id)
        if not order or order.user_id != user_id:
            raise NotFoundError("Order not found")
        return order

    def list(self, user_id: str) -> List[Order]:
        return self.repo.list_for_user(user_id)

    def list_page(
        self,
        user_id: str,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Order], Pagination]:
        orders, total = self.repo.search(user_id=user_id, status=status, offset=(page - 1) * limit, limit=limit)
        return orders, Pagination.of(page, limit, total)

    def cancel(self, user_id: str, order_id: str) -> Order:
        order = self.get(user_id, order_id)

        if order.status not in CANCELLABLE:
            raise BusinessRuleError("Order cannot be cancelled")

        return self._set_status(order, OrderStatus.cancelled)

    # =====================================================
    # ADMIN
    # =====================================================

    def list_all(
        self,
        status: Optional[OrderStatus] = None,
        user_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Order], Pagination]:
        orders, total = self.repo.search(user_id=user_id, status=status, offset=(page - 1) * limit, limit=limit)
        return orders, Pagination.of(page, limit, total)

    def stats(self) -> OrderStats:
        return self.repo.stats()

    def cancel_refunded(self, order_id: str) -> Optional[Order]:
        """Cancel an order whose payment was refunded, if it has not shipped."""
        order = self.repo.get(order_id)
        if not order or order.status not in CANCELLABLE:
            return None
        return self._set_status(order, OrderStatus.cancelled)

    def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        tracking_number: Optional[str] = None,
    ) -> Order:
        """Privileged status change: one step forward, or a cancellation."""
        order = self.repo.get(order_id)
        if not order:
            raise NotFoundError("Order not found")

        if order.status in TERMINAL:
            raise BusinessRuleError(f"Order is already {order.status.value}")

        if status == OrderStatus.cancelled:
            if order.status not in CANCELLABLE:
                raise BusinessRuleError("Order cannot be cancelled")
        elif NEXT_STATUS.get(order.status) != status:
            raise BusinessRuleError(
                f"Cannot move order from '{order.status.value}' to '{status.value}'"
            )

        return self._set_status(order, status, tracking_number=tracking_number)

    def _set_status(self, order: Order, status: OrderStatus, tracking_number: Optional[str] = None) -> Order:
        changes = {"status": status, "updated_at": self._clock()}
        if tracking_number:
            changes["tracking_number"] = tracking_number

        saved = self.repo.save(order.model_copy(update=changes))
        logger.info(
            "Order status changed | order_id=%s | from=%s | to=%s",
            order.id, order.status.value, status.value,
        )
        return saved
