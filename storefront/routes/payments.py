from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, status

from storefront.dependencies import get_cart_service, get_payment_service
from storefront.domain import Payment, PaymentIntent
from storefront.errors import CartEmptyError
from storefront.pricing import build_order_summary
from storefront.schemas import ConfirmPaymentPayload
from storefront.security import CurrentUser, get_current_user
from storefront.services.cart import CartService
from storefront.services.payments import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


def _serialize_intent(intent: PaymentIntent) -> dict:
    return intent.model_dump(mode="json", exclude={"user_id", "idempotency_key"})


def _serialize_payment(payment: Payment) -> dict:
    return payment.model_dump(mode="json", exclude={"user_id"})


# =====================================================
# CREATE PAYMENT INTENT (FROM CART)
# =====================================================
@router.post("/intents", status_code=status.HTTP_201_CREATED)
def create_payment_intent(
    user: CurrentUser = Depends(get_current_user),
    cart: CartService = Depends(get_cart_service),
    service: PaymentService = Depends(get_payment_service),
    idempotency_key: Optional[str] = Header(default=None),
):
    """
    Amount is computed server-side from the cart. Sending the same
    ``Idempotency-Key`` header again returns the same intent.
    """
    items = cart.get_cart(user.id).items
    if not items:
        raise CartEmptyError()

    summary = build_order_summary(items)
    intent = service.create_intent(user.id, summary, idempotency_key)
    return _serialize_intent(intent)


# =====================================================
# CONFIRM PAYMENT INTENT
# =====================================================
@router.post("/intents/{intent_id}/confirm", status_code=status.HTTP_200_OK)
async def confirm_payment_intent(
    intent_id: str,
    payload: ConfirmPaymentPayload,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.confirm(user.id, intent_id, payload.payment_method_id)
    return {
        "success": result.success,
        "order_id": result.order_id,
        "payment_intent": _serialize_intent(result.payment_intent),
        "payment": _serialize_payment(result.payment) if result.payment else None,
    }


# =====================================================
# PAYMENT HISTORY
# =====================================================
@router.get("/history", status_code=status.HTTP_200_OK)
def payment_history(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    payments, pagination = service.history(user.id, page, limit)
    return {
        "data": [_serialize_payment(p) for p in payments],
        "pagination": pagination.model_dump(),
    }


@router.get("/{payment_id}", status_code=status.HTTP_200_OK)
def get_payment(
    payment_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return _serialize_payment(service.get_payment(user.id, payment_id))
