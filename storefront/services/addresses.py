import logging
import re
import uuid
from datetime import datetime, timezone
from typing import List

from pydantic import ValidationError

from storefront.domain import Address
from storefront.errors import InvalidInputError, NotFoundError
from storefront.repositories.base import AddressRepository
from storefront.schemas import AddressCreate

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("first_name", "last_name", "address1", "city", "state", "zip_code", "country")
OPTIONAL_FIELDS = ("company", "address2", "phone")

# Loose international format: optional +, then digits, spaces and the usual
# punctuation, e.g. "+1 (555) 123-4567".
PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9\s\-().]{5,19}$")


def validate_address(address: Address) -> None:
    missing = [f for f in REQUIRED_FIELDS if not (getattr(address, f) or "").strip()]
    if missing:
        raise InvalidInputError(f"Missing required fields: {', '.join(missing)}")

    if address.phone and not PHONE_PATTERN.match(address.phone.strip()):
        raise InvalidInputError("Invalid phone number")


class AddressService:
    """Shipping and billing addresses of a user; one default per type."""

    def __init__(self, repo: AddressRepository):
        self.repo = repo

    def list(self, user_id: str) -> List[Address]:
        return self.repo.list_for_user(user_id)

    def get(self, user_id: str, address_id: str) -> Address:
        address = self.repo.get(user_id, address_id)
        if not address:
            raise NotFoundError("Address not found")
        return address

    def create(self, user_id: str, payload: AddressCreate) -> Address:
        now = datetime.now(timezone.utc)
        address = Address(
            id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )
        validate_address(address)

        saved = self.repo.save(address)
        logger.info(
            "Address created | user_id=%s | address_id=%s | type=%s | default=%s",
            user_id, saved.id, saved.type.value, saved.is_default,
        )
        return saved

    def update(self, user_id: str, address_id: str, changes: dict) -> Address:
        address = self.get(user_id, address_id)

        changes = {k: v for k, v in changes.items() if v is not None or k in OPTIONAL_FIELDS}
        if not changes:
            raise InvalidInputError("No fields provided for update")

        data = {**address.model_dump(), **changes, "updated_at": datetime.now(timezone.utc)}
        try:
            updated = Address.model_validate(data)
        except ValidationError as exc:
            raise InvalidInputError(str(exc.errors()[0]["msg"])) from exc
        validate_address(updated)

        return self.repo.save(updated)

    def delete(self, user_id: str, address_id: str) -> None:
        if not self.repo.delete(user_id, address_id):
            raise NotFoundError("Address not found")
        logger.info("Address deleted | user_id=%s | address_id=%s", user_id, address_id)

    def set_default(self, user_id: str, address_id: str) -> Address:
        address = self.get(user_id, address_id)
        return self.repo.save(
            address.model_copy(update={"is_default": True, "updated_at": datetime.now(timezone.utc)})
        )

    def get_default(self, user_id: str, address_type) -> Address | None:
        for address in self.repo.list_for_user(user_id):
            if address.type == address_type and address.is_default:
                return address
        return None
