"""
In-memory repositories.

Records are copied on the way in and on the way out, so callers can never
change stored state by mutating a returned object.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from storefront.domain import CheckoutStep, OrderStats, OrderStatus, PaymentStatus
from storefront.repositories.base import (
    AddressRepository,
    CartRepository,
    CheckoutSessionRepository,
    OrderRepository,
    PaymentIntentRepository,
    PaymentMethodRepository,
    PaymentRepository,
    Repositories,
)


def _copy(record):
    return record.model_copy(deep=True) if record is not None else None


def _sort_key(record):
    value = record.created_at or datetime.min
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class MemoryAddressRepository(AddressRepository):
    def __init__(self):
        self._rows: Dict[str, object] = {}

    def list_for_user(self, user_id):
        rows = [r for r in self._rows.values() if r.user_id == user_id]
        rows.sort(key=lambda r: (not r.is_default, -_sort_key(r).timestamp()))
        return [_copy(r) for r in rows]

    def get(self, user_id, address_id):
        row = self._rows.get(address_id)
        if row is None or row.user_id != user_id:
            return None
        return _copy(row)

    def save(self, address):
        if address.is_default:
            for row in self._rows.values():
                if (
                    row.user_id == address.user_id
                    and row.type == address.type
                    and row.id != address.id
                ):
                    row.is_default = False
        self._rows[address.id] = _copy(address)
        return _copy(address)

    def delete(self, user_id, address_id):
        row = self._rows.get(address_id)
        if row is None or row.user_id != user_id:
            return False
        del self._rows[address_id]
        return True


class MemoryPaymentMethodRepository(PaymentMethodRepository):
    def __init__(self):
        self._rows: Dict[str, object] = {}

    def list_for_user(self, user_id):
        rows = [r for r in self._rows.values() if r.user_id == user_id and r.is_active]
        rows.sort(key=_sort_key, reverse=True)
        return [_copy(r) for r in rows]

    def get(self, user_id, payment_method_id):
        row = self._rows.get(payment_method_id)
        if row is None or row.user_id != user_id or not row.is_active:
            return None
        return _copy(row)

    def save(self, payment_method):
        if payment_method.is_default:
            for row in self._rows.values():
                if row.user_id == payment_method.user_id and row.id != payment_method.id:
                    row.is_default = False
        self._rows[payment_method.id] = _copy(payment_method)
        return _copy(payment_method)


class MemoryPaymentIntentRepository(PaymentIntentRepository):
    def __init__(self):
        self._rows: Dict[str, object] = {}

    def get(self, intent_id):
        return _copy(self._rows.get(intent_id))

    def get_by_idempotency_key(self, key):
        for row in self._rows.values():
            if row.idempotency_key == key:
                return _copy(row)
        return None

    def save(self, intent):
        self._rows[intent.id] = _copy(intent)
        return _copy(intent)


class MemoryPaymentRepository(PaymentRepository):
    def __init__(self):
        self._rows: Dict[str, object] = {}

    def get(self, payment_id):
        return _copy(self._rows.get(payment_id))

    def get_by_intent(self, intent_id):
        for row in self._rows.values():
            if row.payment_intent_id == intent_id:
                return _copy(row)
        return None

    def list_for_user(self, user_id, offset, limit):
        rows = [r for r in self._rows.values() if r.user_id == user_id]
        rows.sort(key=_sort_key, reverse=True)
        return [_copy(r) for r in rows[offset:offset + limit]], len(rows)

    def list_orphaned(self, before):
        return [
            _copy(row)
            for row in self._rows.values()
            if row.status == PaymentStatus.succeeded
            and row.order_id is None
            and row.updated_at is not None
            and row.updated_at <= before
        ]

    def save(self, payment):
        self._rows[payment.id] = _copy(payment)
        return _copy(payment)


class MemoryOrderRepository(OrderRepository):
    def __init__(self):
        self._rows: Dict[str, object] = {}

    def list_for_user(self, user_id):
        rows = [r for r in self._rows.values() if r.user_id == user_id]
        rows.sort(key=_sort_key, reverse=True)
        return [_copy(r) for r in rows]

    def search(self, *, user_id=None, status=None, offset=0, limit=20):
        rows = [
            r for r in self._rows.values()
            if (user_id is None or r.user_id == user_id)
            and (status is None or r.status == status)
        ]
        rows.sort(key=_sort_key, reverse=True)
        return [_copy(r) for r in rows[offset:offset + limit]], len(rows)

    def stats(self):
        rows = list(self._rows.values())
        return OrderStats(
            total_orders=len(rows),
            total_revenue=sum(
                (r.total for r in rows if r.status != OrderStatus.cancelled), Decimal("0.00")
            ),
            pending_orders=sum(1 for r in rows if r.status == OrderStatus.pending),
            completed_orders=sum(1 for r in rows if r.status == OrderStatus.delivered),
        )

    def get(self, order_id):
        return _copy(self._rows.get(order_id))

    def next_sequence(self):
        return len(self._rows) + 1

    def save(self, order):
        self._rows[order.id] = _copy(order)
        return _copy(order)


class MemoryCartRepository(CartRepository):
    def __init__(self):
        self._carts: Dict[str, Dict[str, object]] = {}

    def list_items(self, user_id):
        items = list(self._carts.get(user_id, {}).values())
        items.sort(key=_sort_key)
        return [_copy(i) for i in items]

    def get_item(self, user_id, item_id):
        return _copy(self._carts.get(user_id, {}).get(item_id))

    def save_item(self, user_id, item):
        self._carts.setdefault(user_id, {})[item.id] = _copy(item)
        return _copy(item)

    def delete_item(self, user_id, item_id):
        return self._carts.get(user_id, {}).pop(item_id, None) is not None

    def clear(self, user_id):
        self._carts.pop(user_id, None)


class MemoryCheckoutSessionRepository(CheckoutSessionRepository):
    def __init__(self):
        self._rows: Dict[str, object] = {}

    def get(self, user_id, session_id):
        row = self._rows.get(session_id)
        if row is None or row.user_id != user_id:
            return None
        return _copy(row)

    def get_open(self, user_id) -> Optional[object]:
        rows: List = [
            r for r in self._rows.values()
            if r.user_id == user_id and r.step != CheckoutStep.completed
        ]
        if not rows:
            return None
        return _copy(max(rows, key=_sort_key))

    def claim(self, user_id, session_id, *, now, stale_before):
        row = self._rows.get(session_id)
        if row is None or row.user_id != user_id:
            return None
        stale = row.step == CheckoutStep.processing and row.updated_at and row.updated_at <= stale_before
        if row.step != CheckoutStep.review and not stale:
            return None
        row.step = CheckoutStep.processing
        row.updated_at = now
        row.last_error = None
        return _copy(row)

    def save(self, session):
        self._rows[session.id] = _copy(session)
        return _copy(session)


def memory_repositories() -> Repositories:
    return Repositories(
        addresses=MemoryAddressRepository(),
        payment_methods=MemoryPaymentMethodRepository(),
        payment_intents=MemoryPaymentIntentRepository(),
        payments=MemoryPaymentRepository(),
        orders=MemoryOrderRepository(),
        carts=MemoryCartRepository(),
        checkout_sessions=MemoryCheckoutSessionRepository(),
    )
