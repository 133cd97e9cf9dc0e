from fastapi import APIRouter, Depends, status

from storefront.dependencies import get_checkout_service
from storefront.domain import CheckoutSession
from storefront.schemas import CheckoutAddressesPayload, CheckoutPaymentMethodPayload
from storefront.security import CurrentUser, get_current_user
from storefront.services.checkout import CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


def _serialize_session(session: CheckoutSession) -> dict:
    return session.model_dump(mode="json", exclude={"user_id", "idempotency_key"})


# =====================================================
# START / RESUME
# =====================================================
@router.post("", status_code=status.HTTP_201_CREATED)
def start_checkout(
    user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    return _serialize_session(service.start(user.id))


@router.get("/{session_id}", status_code=status.HTTP_200_OK)
def get_checkout(
    session_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    return _serialize_session(service.get(user.id, session_id))


# =====================================================
# STEPS
# =====================================================
@router.put("/{session_id}/addresses", status_code=status.HTTP_200_OK)
def select_checkout_addresses(
    session_id: str,
    payload: CheckoutAddressesPayload,
    user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    session = service.select_addresses(
        user.id, session_id, payload.shipping_address_id, payload.billing_address_id
    )
    return _serialize_session(session)


@router.put("/{session_id}/payment-method", status_code=status.HTTP_200_OK)
def select_checkout_payment_method(
    session_id: str,
    payload: CheckoutPaymentMethodPayload,
    user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    session = service.select_payment_method(user.id, session_id, payload.payment_method_id)
    return _serialize_session(session)


@router.post("/{session_id}/back", status_code=status.HTTP_200_OK)
def checkout_back(
    session_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    return _serialize_session(service.back(user.id, session_id))


# =====================================================
# PLACE ORDER / CONFIRMATION
# =====================================================
@router.post("/{session_id}/place-order", status_code=status.HTTP_201_CREATED)
async def place_order(
    session_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    confirmation = await service.place_order(user.id, session_id)
    return confirmation.model_dump(mode="json")


@router.get("/{session_id}/confirmation", status_code=status.HTTP_200_OK)
def get_checkout_confirmation(
    session_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: CheckoutService = Depends(get_checkout_service),
):
    return service.confirmation(user.id, session_id).model_dump(mode="json")
