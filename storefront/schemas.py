from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain import AddressType, OrderStatus


class Payload(BaseModel):
    # Unknown fields are rejected at the boundary.
    model_config = ConfigDict(extra="forbid")


# =====================================================
# ADDRESSES
# =====================================================

class AddressCreate(Payload):
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


class AddressUpdate(Payload):
    type: Optional[AddressType] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None


# =====================================================
# PAYMENT METHODS
# =====================================================

class CardCreate(Payload):
    card_number: str = Field(repr=False)
    exp_month: int
    exp_year: int
    cvc: str = Field(repr=False)
    name: Optional[str] = None
    is_default: bool = False


# =====================================================
# CART
# =====================================================

class CartItemCreate(Payload):
    product_id: str
    name: str
    price: Decimal = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    image: Optional[str] = None


class CartItemUpdate(Payload):
    quantity: int = Field(ge=1)


# =====================================================
# ORDERS
# =====================================================

class OrderStatusUpdate(Payload):
    status: OrderStatus
    tracking_number: Optional[str] = None


# =====================================================
# PAYMENTS
# =====================================================

class ConfirmPaymentPayload(Payload):
    payment_method_id: str


class RefundPayload(Payload):
    reason: str = Field(min_length=1, max_length=500)


# =====================================================
# CHECKOUT
# =====================================================

class CheckoutAddressesPayload(Payload):
    shipping_address_id: str
    billing_address_id: str


class CheckoutPaymentMethodPayload(Payload):
    payment_method_id: str
