"""Request payload builders shared by the tests."""
import uuid
from datetime import date
from decimal import Decimal

from storefront.domain import AddressType
from storefront.gateway import TEST_CARD_NUMBERS
from storefront.schemas import AddressCreate, CardCreate, CartItemCreate

TODAY = date(2025, 6, 15)


def address_data(address_type=AddressType.shipping, **overrides) -> dict:
    data = {
        "type": address_type.value if isinstance(address_type, AddressType) else address_type,
        "first_name": "Jane",
        "last_name": "Doe",
        "address1": "123 Main Street",
        "address2": "Apt 4B",
        "city": "San Francisco",
        "state": "CA",
        "zip_code": "94102",
        "country": "US",
        "phone": "+1 415-555-0100",
    }
    data.update(overrides)
    return data


def address_payload(address_type=AddressType.shipping, **overrides) -> AddressCreate:
    return AddressCreate(**address_data(address_type, **overrides))


def card_data(number=TEST_CARD_NUMBERS["visa"], **overrides) -> dict:
    data = {
        "card_number": number,
        "exp_month": 12,
        "exp_year": 2030,
        "cvc": "4321" if number.startswith(("34", "37")) else "123",
        "name": "Jane Doe",
    }
    data.update(overrides)
    return data


def card_payload(number=TEST_CARD_NUMBERS["visa"], **overrides) -> CardCreate:
    return CardCreate(**card_data(number, **overrides))


def cart_item_payload(price="20.00", quantity=1, product_id=None, **overrides) -> CartItemCreate:
    data = {
        "product_id": product_id or f"prod-{uuid.uuid4().hex[:8]}",
        "name": "Canvas Tote",
        "price": Decimal(price),
        "quantity": quantity,
    }
    data.update(overrides)
    return CartItemCreate(**data)
