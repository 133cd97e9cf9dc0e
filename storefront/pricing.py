from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from storefront import config
from storefront.domain import CartItem, OrderItem, OrderSummary

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def calculate_shipping(subtotal: Decimal) -> Decimal:
    if subtotal > config.FREE_SHIPPING_THRESHOLD:
        return to_money(0)
    return to_money(config.SHIPPING_FEE)


def calculate_tax(subtotal: Decimal) -> Decimal:
    return to_money(subtotal * config.TAX_RATE)


def summarize(subtotal, items: Iterable[OrderItem] = ()) -> OrderSummary:
    subtotal = to_money(subtotal)
    shipping = calculate_shipping(subtotal)
    tax = calculate_tax(subtotal)
    return OrderSummary(
        subtotal=subtotal,
        shipping=shipping,
        tax=tax,
        total=to_money(subtotal + shipping + tax),
        items=list(items),
    )


def build_order_summary(cart_items: Iterable[CartItem]) -> OrderSummary:
    """Order summary from the live cart contents."""
    items = [
        OrderItem(
            id=item.id,
            product_id=item.product_id,
            name=item.name,
            price=to_money(item.price),
            quantity=item.quantity,
            image=item.image,
        )
        for item in cart_items
    ]
    subtotal = sum((item.price * item.quantity for item in items), Decimal("0"))
    return summarize(subtotal, items)
