import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from storefront.database import Base
from storefront.domain import (
    AddressType,
    CheckoutStep,
    OrderStatus,
    PaymentIntentStatus,
    PaymentMethodType,
    PaymentStatus,
)


def _uuid() -> str:
    return str(uuid.uuid4())


# =========================
# USER
# =========================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)

    email = Column(String, nullable=False, unique=True, index=True)
    hashed_password = Column(String, nullable=False)

    full_name = Column(String)
    phone = Column(String)

    role = Column(String, default="user", nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    addresses = relationship("Address", back_populates="user", cascade="all, delete-orphan")


# =========================
# ADDRESS
# =========================

class Address(Base):
    __tablename__ = "addresses"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(AddressType, name="address_type"), nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    company = Column(String)
    address1 = Column(String, nullable=False)
    address2 = Column(String)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    zip_code = Column(String, nullable=False)
    country = Column(String, nullable=False)
    phone = Column(String)
    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="addresses")


# One default per (user, type), enforced by the database as well.
Index(
    "uq_addresses_default_per_type",
    Address.user_id,
    Address.type,
    unique=True,
    postgresql_where=Address.is_default == True,  # noqa: E712
    sqlite_where=Address.is_default == True,  # noqa: E712
)


# =========================
# PAYMENT METHOD
# =========================

class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(Enum(PaymentMethodType, name="payment_method_type"), nullable=False)
    last4 = Column(String(4), nullable=False)
    brand = Column(String)
    exp_month = Column(Integer)
    exp_year = Column(Integer)
    name = Column(String)

    # Gateway token; the card number itself is never stored.
    provider_token = Column(String, nullable=False, unique=True)

    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


Index(
    "uq_payment_methods_default_per_user",
    PaymentMethod.user_id,
    unique=True,
    postgresql_where=PaymentMethod.is_default == True,  # noqa: E712
    sqlite_where=PaymentMethod.is_default == True,  # noqa: E712
)


# =========================
# PAYMENT INTENT
# =========================

class PaymentIntent(Base):
    __tablename__ = "payment_intents"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    client_secret = Column(String, nullable=False)
    amount = Column(Integer, nullable=False)  # minor units
    currency = Column(String(3), nullable=False)

    status = Column(
        Enum(PaymentIntentStatus, name="payment_intent_status"),
        default=PaymentIntentStatus.requires_payment_method,
        nullable=False,
    )

    payment_method_id = Column(String(36), ForeignKey("payment_methods.id", ondelete="SET NULL"))
    idempotency_key = Column(String(64), nullable=False, unique=True)
    last_error = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


# =========================
# ORDER
# =========================

class Order(Base):
    __tablename__ = "orders"
    __json_fields__ = ("items", "shipping_address", "billing_address", "payment_method")

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    order_number = Column(String, nullable=False, unique=True)

    status = Column(
        Enum(OrderStatus, name="order_status"),
        default=OrderStatus.pending,
        nullable=False,
    )

    # Snapshots copied at placement time, not references.
    items = Column(JSON, nullable=False)
    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    payment_method = Column(JSON, nullable=False)

    subtotal = Column(Numeric(10, 2), nullable=False)
    shipping = Column(Numeric(10, 2), nullable=False)
    tax = Column(Numeric(10, 2), nullable=False)
    total = Column(Numeric(10, 2), nullable=False)

    payment_intent_id = Column(String(64), ForeignKey("payment_intents.id", ondelete="SET NULL"))
    estimated_delivery = Column(Date)
    tracking_number = Column(String)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    payments = relationship("Payment", back_populates="order")


Index("idx_orders_created_at", Order.created_at)


# =========================
# PAYMENT
# =========================

class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    order_id = Column(String(36), ForeignKey("orders.id", ondelete="RESTRICT"), index=True)
    payment_intent_id = Column(
        String(64),
        ForeignKey("payment_intents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    amount = Column(Integer, nullable=False)  # minor units
    currency = Column(String(3), nullable=False)

    status = Column(
        Enum(PaymentStatus, name="payment_status"),
        default=PaymentStatus.pending,
        nullable=False,
    )

    provider_charge_id = Column(String, unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    order = relationship("Order", back_populates="payments")


Index("idx_payments_status", Payment.status)


# =========================
# CART
# =========================

class Cart(Base):
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan")


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)

    product_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # Price snapshot at time of adding
    quantity = Column(Integer, nullable=False, default=1)
    image = Column(String)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    cart = relationship("Cart", back_populates="items")


# =========================
# CHECKOUT SESSION
# =========================

class CheckoutSession(Base):
    __tablename__ = "checkout_sessions"
    __json_fields__ = ("summary",)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    step = Column(
        Enum(CheckoutStep, name="checkout_step"),
        default=CheckoutStep.address,
        nullable=False,
    )

    shipping_address_id = Column(String(36), ForeignKey("addresses.id", ondelete="SET NULL"))
    billing_address_id = Column(String(36), ForeignKey("addresses.id", ondelete="SET NULL"))
    payment_method_id = Column(String(36), ForeignKey("payment_methods.id", ondelete="SET NULL"))

    idempotency_key = Column(String(64), nullable=False, index=True)
    payment_intent_id = Column(String(64), ForeignKey("payment_intents.id", ondelete="SET NULL"))
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="SET NULL"))

    last_error = Column(Text)
    summary = Column(JSON)  # OrderSummary that was charged

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


Index("idx_checkout_sessions_user_step", CheckoutSession.user_id, CheckoutSession.step)
