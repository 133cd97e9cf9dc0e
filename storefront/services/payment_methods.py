import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from storefront.cards import (
    get_card_brand,
    last4,
    normalize_card_number,
    validate_card_number,
    validate_cvc,
    validate_expiry,
)
from storefront.domain import PaymentMethod, PaymentMethodType
from storefront.errors import InvalidCardError, InvalidCVCError, InvalidInputError, NotFoundError
from storefront.gateway import PaymentGateway
from storefront.repositories.base import PaymentMethodRepository
from storefront.schemas import CardCreate

logger = logging.getLogger(__name__)


class PaymentMethodService:
    """
    Saved cards of a user.

    Only the gateway token, brand, last four digits and expiry are kept; the
    card number and CVC are validated, tokenized and then dropped.
    """

    def __init__(
        self,
        repo: PaymentMethodRepository,
        gateway: PaymentGateway,
        today: Optional[Callable[[], date]] = None,
    ):
        self.repo = repo
        self.gateway = gateway
        self._today = today or date.today

    def list(self, user_id: str) -> List[PaymentMethod]:
        return self.repo.list_for_user(user_id)

    def get(self, user_id: str, payment_method_id: str) -> PaymentMethod:
        method = self.repo.get(user_id, payment_method_id)
        if not method:
            raise NotFoundError("Payment method not found")
        return method

    def get_default(self, user_id: str) -> Optional[PaymentMethod]:
        for method in self.repo.list_for_user(user_id):
            if method.is_default:
                return method
        return None

    def create(self, user_id: str, card: CardCreate) -> PaymentMethod:
        number = normalize_card_number(card.card_number)

        if not validate_card_number(number):
            raise InvalidCardError("Invalid card number")

        brand = get_card_brand(number)
        if not validate_cvc(card.cvc, brand):
            raise InvalidCVCError(
                "CVC must be 4 digits for American Express" if brand == "amex" else "CVC must be 3 digits"
            )

        if not validate_expiry(card.exp_month, card.exp_year, self._today()):
            raise InvalidInputError("Card has expired")

        token = self.gateway.tokenize(number, card.exp_month, card.exp_year)

        # First payment method is default
        is_default = card.is_default or not self.repo.list_for_user(user_id)

        method = PaymentMethod(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=PaymentMethodType.card,
            last4=last4(number),
            brand=brand,
            exp_month=card.exp_month,
            exp_year=card.exp_year,
            name=card.name,
            provider_token=token,
            is_default=is_default,
            is_active=True,
            created_at=datetime.now(timezone.utc),
        )
        saved = self.repo.save(method)

        logger.info(
            "Payment method added | user_id=%s | payment_method_id=%s | brand=%s | last4=%s",
            user_id, saved.id, saved.brand, saved.last4,
        )
        return saved

    def delete(self, user_id: str, payment_method_id: str) -> None:
        method = self.get(user_id, payment_method_id)
        self.repo.save(method.model_copy(update={"is_active": False, "is_default": False}))

        # If deleted method was default, make the newest remaining one default
        if method.is_default:
            remaining = self.repo.list_for_user(user_id)
            if remaining:
                self.repo.save(remaining[0].model_copy(update={"is_default": True}))

        logger.info("Payment method removed | user_id=%s | payment_method_id=%s", user_id, payment_method_id)

    def set_default(self, user_id: str, payment_method_id: str) -> PaymentMethod:
        method = self.get(user_id, payment_method_id)
        return self.repo.save(method.model_copy(update={"is_default": True}))
