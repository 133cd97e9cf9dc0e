import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


# =========================
# ENUMS
# =========================

class AddressType(str, enum.Enum):
    shipping = "shipping"
    billing = "billing"


class PaymentMethodType(str, enum.Enum):
    card = "card"
    bank_account = "bank_account"


class PaymentIntentStatus(str, enum.Enum):
    requires_payment_method = "requires_payment_method"
    requires_confirmation = "requires_confirmation"
    requires_action = "requires_action"
    processing = "processing"
    requires_capture = "requires_capture"
    canceled = "canceled"
    succeeded = "succeeded"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"
    refunded = "refunded"


class OrderStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class CheckoutStep(str, enum.Enum):
    address = "address"
    payment = "payment"
    review = "review"
    processing = "processing"
    completed = "completed"


# =========================
# BASE
# =========================

class Record(BaseModel):
    """Plain data record shared by services and repositories."""

    model_config = ConfigDict(from_attributes=True)


# =========================
# ADDRESS
# =========================

class Address(Record):
    id: str
    user_id: str
    type: AddressType
    first_name: str
    last_name: str
    company: Optional[str] = None
    address1: str
    address2: Optional[str] = None
    city: str
    state: str
    zip_code: str
    country: str
    phone: Optional[str] = None
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =========================
# PAYMENT METHOD
# =========================

class PaymentMethod(Record):
    id: str
    user_id: str
    type: PaymentMethodType = PaymentMethodType.card
    last4: str
    brand: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None
    name: Optional[str] = None
    provider_token: str
    is_default: bool = False
    is_active: bool = True
    created_at: Optional[datetime] = None


# =========================
# PAYMENT INTENT / LEDGER
# =========================

class PaymentIntent(Record):
    id: str
    user_id: str
    client_secret: str
    amount: int  # minor units
    currency: str
    status: PaymentIntentStatus = PaymentIntentStatus.requires_payment_method
    payment_method_id: Optional[str] = None
    idempotency_key: str
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Payment(Record):
    id: str
    user_id: str
    order_id: Optional[str] = None
    payment_intent_id: str
    amount: int  # minor units
    currency: str
    status: PaymentStatus = PaymentStatus.pending
    provider_charge_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =========================
# CART
# =========================

class CartItem(Record):
    id: str
    product_id: str
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None
    created_at: Optional[datetime] = None


class Cart(Record):
    items: List[CartItem] = []
    total_items: int = 0
    subtotal: Decimal = Decimal("0.00")


# =========================
# ORDER
# =========================

class OrderItem(Record):
    id: str
    product_id: str
    name: str
    price: Decimal
    quantity: int
    image: Optional[str] = None


class OrderSummary(Record):
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    items: List[OrderItem] = []


class OrderAddress(Record):
    """Copy of an address taken when the order is placed."""

    first_name: str
    last_name: str
    company: Optional[str] = None
    address1: str
    address2: Optional[str] = None
    city: str
    state: str
    zip_code: str
    country: str
    phone: Optional[str] = None


class OrderPayment(Record):
    """Copy of the payment method taken when the order is placed."""

    method: str
    last4: str
    brand: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class Order(Record):
    id: str
    user_id: str
    order_number: str
    status: OrderStatus = OrderStatus.pending
    items: List[OrderItem]
    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    shipping_address: OrderAddress
    billing_address: OrderAddress
    payment_method: OrderPayment
    payment_intent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    estimated_delivery: Optional[date] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


class OrderStats(Record):
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0.00")
    pending_orders: int = 0
    completed_orders: int = 0


# =========================
# CHECKOUT
# =========================

class CheckoutSession(Record):
    id: str
    user_id: str
    step: CheckoutStep = CheckoutStep.address
    shipping_address_id: Optional[str] = None
    billing_address_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    idempotency_key: str
    payment_intent_id: Optional[str] = None
    order_id: Optional[str] = None
    last_error: Optional[str] = None
    summary: Optional[OrderSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CheckoutConfirmation(Record):
    order_id: str
    order_number: str
    summary: OrderSummary
    shipping_address: OrderAddress
    billing_address: OrderAddress
    payment_method: OrderPayment
    estimated_delivery: Optional[date] = None


# =========================
# PAGINATION
# =========================

class Pagination(Record):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=-(-total // limit))
