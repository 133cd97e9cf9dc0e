"""SQLAlchemy repositories. Each mutating call commits its own transaction."""
import logging
from decimal import Decimal

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront import domain, models
from storefront.domain import CheckoutStep, OrderStatus, PaymentStatus
from storefront.errors import ConflictError
from storefront.pricing import to_money
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

logger = logging.getLogger(__name__)


# =====================================================
# HELPERS
# =====================================================

def _column_values(row_cls, record, **extra) -> dict:
    data = record.model_dump()
    json_fields = getattr(row_cls, "__json_fields__", ())
    if json_fields:
        json_data = record.model_dump(mode="json", include=set(json_fields))
        data.update(json_data)
    data.update(extra)
    return data


def _upsert(db: Session, row_cls, record, **extra):
    data = _column_values(row_cls, record, **extra)
    row = db.get(row_cls, record.id)
    if row is None:
        row = row_cls(**data)
        db.add(row)
    else:
        for field, value in data.items():
            setattr(row, field, value)
    return row


def _to_record(record_cls, row):
    return record_cls.model_validate(row) if row is not None else None


class _SqlRepository:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, record_cls, row):
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Lost a race on a unique or partial unique index; the caller may retry.
            self.db.rollback()
            logger.warning("Write conflict | table=%s | error=%s", row.__tablename__, exc.orig)
            raise ConflictError("This record was changed by another request. Please try again.") from exc
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(row)
        return _to_record(record_cls, row)


# =====================================================
# ADDRESSES
# =====================================================

class SqlAddressRepository(_SqlRepository, AddressRepository):
    def list_for_user(self, user_id):
        rows = (
            self.db.query(models.Address)
            .filter(models.Address.user_id == user_id)
            .order_by(models.Address.is_default.desc(), models.Address.created_at.desc())
            .all()
        )
        return [_to_record(domain.Address, r) for r in rows]

    def get(self, user_id, address_id):
        row = (
            self.db.query(models.Address)
            .filter(models.Address.id == address_id, models.Address.user_id == user_id)
            .first()
        )
        return _to_record(domain.Address, row)

    def save(self, address):
        if address.is_default:
            # Remove default from all other addresses of this type
            self.db.query(models.Address).filter(
                models.Address.user_id == address.user_id,
                models.Address.type == address.type,
                models.Address.id != address.id,
            ).update({"is_default": False}, synchronize_session="fetch")

        row = _upsert(self.db, models.Address, address)
        return self._commit(domain.Address, row)

    def delete(self, user_id, address_id):
        row = (
            self.db.query(models.Address)
            .filter(models.Address.id == address_id, models.Address.user_id == user_id)
            .first()
        )
        if not row:
            return False
        self.db.delete(row)
        self.db.commit()
        return True


# =====================================================
# PAYMENT METHODS
# =====================================================

class SqlPaymentMethodRepository(_SqlRepository, PaymentMethodRepository):
    def list_for_user(self, user_id):
        rows = (
            self.db.query(models.PaymentMethod)
            .filter(
                models.PaymentMethod.user_id == user_id,
                models.PaymentMethod.is_active == True,  # noqa: E712
            )
            .order_by(models.PaymentMethod.created_at.desc())
            .all()
        )
        return [_to_record(domain.PaymentMethod, r) for r in rows]

    def get(self, user_id, payment_method_id):
        row = (
            self.db.query(models.PaymentMethod)
            .filter(
                models.PaymentMethod.id == payment_method_id,
                models.PaymentMethod.user_id == user_id,
                models.PaymentMethod.is_active == True,  # noqa: E712
            )
            .first()
        )
        return _to_record(domain.PaymentMethod, row)

    def save(self, payment_method):
        if payment_method.is_default:
            self.db.query(models.PaymentMethod).filter(
                models.PaymentMethod.user_id == payment_method.user_id,
                models.PaymentMethod.id != payment_method.id,
            ).update({"is_default": False}, synchronize_session="fetch")

        row = _upsert(self.db, models.PaymentMethod, payment_method)
        return self._commit(domain.PaymentMethod, row)


# =====================================================
# PAYMENT INTENTS / PAYMENTS
# =====================================================

class SqlPaymentIntentRepository(_SqlRepository, PaymentIntentRepository):
    def get(self, intent_id):
        return _to_record(domain.PaymentIntent, self.db.get(models.PaymentIntent, intent_id))

    def get_by_idempotency_key(self, key):
        row = (
            self.db.query(models.PaymentIntent)
            .filter(models.PaymentIntent.idempotency_key == key)
            .first()
        )
        return _to_record(domain.PaymentIntent, row)

    def save(self, intent):
        row = _upsert(self.db, models.PaymentIntent, intent)
        return self._commit(domain.PaymentIntent, row)


class SqlPaymentRepository(_SqlRepository, PaymentRepository):
    def get(self, payment_id):
        return _to_record(domain.Payment, self.db.get(models.Payment, payment_id))

    def get_by_intent(self, intent_id):
        row = (
            self.db.query(models.Payment)
            .filter(models.Payment.payment_intent_id == intent_id)
            .first()
        )
        return _to_record(domain.Payment, row)

    def list_for_user(self, user_id, offset, limit):
        query = self.db.query(models.Payment).filter(models.Payment.user_id == user_id)
        total = query.count()
        rows = (
            query.order_by(models.Payment.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [_to_record(domain.Payment, r) for r in rows], total

    def list_orphaned(self, before):
        rows = (
            self.db.query(models.Payment)
            .filter(
                models.Payment.status == PaymentStatus.succeeded,
                models.Payment.order_id.is_(None),
                models.Payment.updated_at <= before,
            )
            .all()
        )
        return [_to_record(domain.Payment, r) for r in rows]

    def save(self, payment):
        row = _upsert(self.db, models.Payment, payment)
        return self._commit(domain.Payment, row)


# =====================================================
# ORDERS
# =====================================================

class SqlOrderRepository(_SqlRepository, OrderRepository):
    def list_for_user(self, user_id):
        rows = (
            self.db.query(models.Order)
            .filter(models.Order.user_id == user_id)
            .order_by(models.Order.created_at.desc())
            .all()
        )
        return [_to_record(domain.Order, r) for r in rows]

    def search(self, *, user_id=None, status=None, offset=0, limit=20):
        query = self.db.query(models.Order)
        if user_id:
            query = query.filter(models.Order.user_id == user_id)
        if status:
            query = query.filter(models.Order.status == status)

        total = query.count()
        rows = (
            query.order_by(models.Order.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [_to_record(domain.Order, r) for r in rows], total

    def stats(self):
        def count(*criteria):
            return self.db.query(func.count(models.Order.id)).filter(*criteria).scalar() or 0

        revenue = (
            self.db.query(func.sum(models.Order.total))
            .filter(models.Order.status != OrderStatus.cancelled)
            .scalar()
        )
        return domain.OrderStats(
            total_orders=count(),
            total_revenue=to_money(Decimal(str(revenue or 0))),
            pending_orders=count(models.Order.status == OrderStatus.pending),
            completed_orders=count(models.Order.status == OrderStatus.delivered),
        )

    def get(self, order_id):
        return _to_record(domain.Order, self.db.get(models.Order, order_id))

    def next_sequence(self):
        return (self.db.query(func.count(models.Order.id)).scalar() or 0) + 1

    def save(self, order):
        row = _upsert(self.db, models.Order, order)
        return self._commit(domain.Order, row)


# =====================================================
# CART
# =====================================================

class SqlCartRepository(_SqlRepository, CartRepository):
    def _cart(self, user_id, create=False):
        cart = self.db.query(models.Cart).filter(models.Cart.user_id == user_id).first()
        if not cart and create:
            cart = models.Cart(user_id=user_id)
            self.db.add(cart)
            self.db.flush()
        return cart

    def list_items(self, user_id):
        cart = self._cart(user_id)
        if not cart:
            return []
        rows = (
            self.db.query(models.CartItem)
            .filter(models.CartItem.cart_id == cart.id)
            .order_by(models.CartItem.created_at.asc())
            .all()
        )
        return [_to_record(domain.CartItem, r) for r in rows]

    def get_item(self, user_id, item_id):
        row = (
            self.db.query(models.CartItem)
            .join(models.Cart, models.CartItem.cart_id == models.Cart.id)
            .filter(models.Cart.user_id == user_id, models.CartItem.id == item_id)
            .first()
        )
        return _to_record(domain.CartItem, row)

    def save_item(self, user_id, item):
        cart = self._cart(user_id, create=True)
        row = _upsert(self.db, models.CartItem, item, cart_id=cart.id)
        return self._commit(domain.CartItem, row)

    def delete_item(self, user_id, item_id):
        cart = self._cart(user_id)
        if not cart:
            return False
        deleted = (
            self.db.query(models.CartItem)
            .filter(models.CartItem.cart_id == cart.id, models.CartItem.id == item_id)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted > 0

    def clear(self, user_id):
        cart = self._cart(user_id)
        if cart:
            self.db.query(models.CartItem).filter(
                models.CartItem.cart_id == cart.id
            ).delete(synchronize_session=False)
            self.db.commit()


# =====================================================
# CHECKOUT SESSIONS
# =====================================================

class SqlCheckoutSessionRepository(_SqlRepository, CheckoutSessionRepository):
    def get(self, user_id, session_id):
        row = (
            self.db.query(models.CheckoutSession)
            .filter(
                models.CheckoutSession.id == session_id,
                models.CheckoutSession.user_id == user_id,
            )
            .first()
        )
        return _to_record(domain.CheckoutSession, row)

    def get_open(self, user_id):
        row = (
            self.db.query(models.CheckoutSession)
            .filter(
                models.CheckoutSession.user_id == user_id,
                models.CheckoutSession.step != CheckoutStep.completed,
            )
            .order_by(models.CheckoutSession.created_at.desc())
            .first()
        )
        return _to_record(domain.CheckoutSession, row)

    def claim(self, user_id, session_id, *, now, stale_before):
        claimable = or_(
            models.CheckoutSession.step == CheckoutStep.review,
            and_(
                models.CheckoutSession.step == CheckoutStep.processing,
                models.CheckoutSession.updated_at <= stale_before,
            ),
        )
        # Conditional UPDATE: of two concurrent requests only one matches a row.
        claimed = (
            self.db.query(models.CheckoutSession)
            .filter(
                models.CheckoutSession.id == session_id,
                models.CheckoutSession.user_id == user_id,
                claimable,
            )
            .update(
                {"step": CheckoutStep.processing, "updated_at": now, "last_error": None},
                synchronize_session=False,
            )
        )
        self.db.commit()
        if not claimed:
            return None
        return self.get(user_id, session_id)

    def save(self, session):
        row = _upsert(self.db, models.CheckoutSession, session)
        return self._commit(domain.CheckoutSession, row)


def sql_repositories(db: Session) -> Repositories:
    return Repositories(
        addresses=SqlAddressRepository(db),
        payment_methods=SqlPaymentMethodRepository(db),
        payment_intents=SqlPaymentIntentRepository(db),
        payments=SqlPaymentRepository(db),
        orders=SqlOrderRepository(db),
        carts=SqlCartRepository(db),
        checkout_sessions=SqlCheckoutSessionRepository(db),
    )
