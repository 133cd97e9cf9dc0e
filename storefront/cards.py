"""
Card number helpers: brand detection, Luhn checksum, CVC and expiry checks.

Nothing here stores or logs a card number.
"""
import re
from datetime import date
from typing import Optional


# Evaluated in order; the first match wins.
CARD_BRANDS = (
    ("visa", re.compile(r"^4")),
    ("mastercard", re.compile(r"^(?:5[1-5]|2[2-7])")),
    ("amex", re.compile(r"^3[47]")),
    ("discover", re.compile(r"^6(?:011|5)")),
    ("diners", re.compile(r"^3[0689]")),
    ("jcb", re.compile(r"^35")),
    ("unionpay", re.compile(r"^62")),
)

_WHITESPACE = re.compile(r"\s")
_CARD_DIGITS = re.compile(r"^\d{13,19}$")


def normalize_card_number(card_number: str) -> str:
    return _WHITESPACE.sub("", card_number or "")


def get_card_brand(card_number: str) -> str:
    number = normalize_card_number(card_number)
    for brand, pattern in CARD_BRANDS:
        if pattern.match(number):
            return brand
    return "unknown"


def luhn_valid(digits: str) -> bool:
    total = 0
    for index, char in enumerate(reversed(digits)):
        value = int(char)
        if index % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return total % 10 == 0


def validate_card_number(card_number: str) -> bool:
    """13-19 digits once whitespace is removed, and a valid Luhn checksum."""
    number = normalize_card_number(card_number)
    if not _CARD_DIGITS.match(number):
        return False
    return luhn_valid(number)


def validate_cvc(cvc: str, brand: str) -> bool:
    length = 4 if brand == "amex" else 3
    return bool(re.fullmatch(r"\d{%d}" % length, cvc or ""))


def validate_expiry(month: int, year: int, today: Optional[date] = None) -> bool:
    today = today or date.today()

    if month < 1 or month > 12:
        return False
    if year < today.year:
        return False
    if year == today.year and month < today.month:
        return False

    return True


def last4(card_number: str) -> str:
    return normalize_card_number(card_number)[-4:]
