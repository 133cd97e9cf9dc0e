from fastapi import APIRouter, Depends, status

from storefront.dependencies import get_cart_service
from storefront.schemas import CartItemCreate, CartItemUpdate
from storefront.security import CurrentUser, get_current_user
from storefront.services.cart import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


# =====================================================
# GET CART
# =====================================================
@router.get("", status_code=status.HTTP_200_OK)
def get_cart(
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    return service.get_cart(user.id).model_dump(mode="json")


# =====================================================
# ADD / UPDATE / REMOVE ITEMS
# =====================================================
@router.post("/items", status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: CartItemCreate,
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    """Adding a product already in the cart increases its quantity."""
    return service.add_item(user.id, payload).model_dump(mode="json")


@router.patch("/items/{item_id}", status_code=status.HTTP_200_OK)
def update_cart_item(
    item_id: str,
    payload: CartItemUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    return service.update_quantity(user.id, item_id, payload.quantity).model_dump(mode="json")


@router.delete("/items/{item_id}", status_code=status.HTTP_200_OK)
def remove_from_cart(
    item_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    service.remove_item(user.id, item_id)
    return {"message": "Item removed from cart"}


# =====================================================
# CLEAR CART
# =====================================================
@router.delete("", status_code=status.HTTP_200_OK)
def clear_cart(
    user: CurrentUser = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    service.clear(user.id)
    return {"message": "Cart cleared"}
