import uuid
from datetime import datetime, timezone
from decimal import Decimal

from storefront.domain import Cart, CartItem
from storefront.errors import InvalidInputError, NotFoundError
from storefront.pricing import to_money
from storefront.repositories.base import CartRepository
from storefront.schemas import CartItemCreate


class CartService:
    def __init__(self, repo: CartRepository):
        self.repo = repo

    def get_cart(self, user_id: str) -> Cart:
        items = self.repo.list_items(user_id)
        subtotal = sum((item.price * item.quantity for item in items), Decimal("0"))
        return Cart(
            items=items,
            total_items=sum(item.quantity for item in items),
            subtotal=to_money(subtotal),
        )

    def add_item(self, user_id: str, payload: CartItemCreate) -> CartItem:
        # Same product already in cart: bump the quantity instead
        for item in self.repo.list_items(user_id):
            if item.product_id == payload.product_id:
                return self.repo.save_item(
                    user_id,
                    item.model_copy(update={"quantity": item.quantity + payload.quantity}),
                )

        item = CartItem(
            id=str(uuid.uuid4()),
            product_id=payload.product_id,
            name=payload.name,
            price=to_money(payload.price),
            quantity=payload.quantity,
            image=payload.image,
            created_at=datetime.now(timezone.utc),
        )
        return self.repo.save_item(user_id, item)

    def update_quantity(self, user_id: str, item_id: str, quantity: int) -> CartItem:
        if quantity < 1:
            raise InvalidInputError("Quantity must be at least 1")

        item = self.repo.get_item(user_id, item_id)
        if not item:
            raise NotFoundError("Cart item not found")
        return self.repo.save_item(user_id, item.model_copy(update={"quantity": quantity}))

    def remove_item(self, user_id: str, item_id: str) -> None:
        if not self.repo.delete_item(user_id, item_id):
            raise NotFoundError("Cart item not found")

    def clear(self, user_id: str) -> None:
        self.repo.clear(user_id)
