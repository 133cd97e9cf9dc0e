from fastapi import APIRouter, Depends, status

from storefront.dependencies import get_payment_method_service
from storefront.domain import PaymentMethod
from storefront.schemas import CardCreate
from storefront.security import CurrentUser, get_current_user
from storefront.services.payment_methods import PaymentMethodService

router = APIRouter(prefix="/users/me/payment-methods", tags=["payment-methods"])


def _serialize_payment_method(method: PaymentMethod) -> dict:
    # The gateway token stays server-side.
    return method.model_dump(mode="json", exclude={"user_id", "provider_token", "is_active"})


@router.get("", status_code=status.HTTP_200_OK)
def get_my_payment_methods(
    user: CurrentUser = Depends(get_current_user),
    service: PaymentMethodService = Depends(get_payment_method_service),
):
    return [_serialize_payment_method(m) for m in service.list(user.id)]


@router.post("", status_code=status.HTTP_201_CREATED)
def add_payment_method(
    payload: CardCreate,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentMethodService = Depends(get_payment_method_service),
):
    return _serialize_payment_method(service.create(user.id, payload))


@router.delete("/{payment_method_id}", status_code=status.HTTP_200_OK)
def delete_payment_method(
    payment_method_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentMethodService = Depends(get_payment_method_service),
):
    service.delete(user.id, payment_method_id)
    return {"message": "Payment method removed"}


@router.post("/{payment_method_id}/set-default", status_code=status.HTTP_200_OK)
def set_default_payment_method(
    payment_method_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentMethodService = Depends(get_payment_method_service),
):
    return _serialize_payment_method(service.set_default(user.id, payment_method_id))
