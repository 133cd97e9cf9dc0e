from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool

from storefront.dependencies import get_order_service, get_payment_service
from storefront.schemas import RefundPayload
from storefront.security import require_admin
from storefront.services.orders import OrderService
from storefront.services.payments import PaymentService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# =====================================================
# PAYMENTS: REFUND
# =====================================================
@router.post("/payments/{payment_id}/refund")
async def refund_payment(
    payment_id: str,
    payload: RefundPayload,
    payments: PaymentService = Depends(get_payment_service),
    orders: OrderService = Depends(get_order_service),
):
    """Refund in full; an order that has not shipped yet is cancelled with it."""
    payment = await payments.refund_payment(payment_id, payload.reason)

    order = None
    if payment.order_id:
        order = await run_in_threadpool(orders.cancel_refunded, payment.order_id)

    return {
        "payment": payment.model_dump(mode="json"),
        "order_status": order.status.value if order else None,
    }


# =====================================================
# PAYMENTS: RECONCILIATION
# =====================================================
@router.post("/payments/reconcile")
async def reconcile_payments(
    grace_seconds: Optional[int] = Query(default=None, ge=0),
    service: PaymentService = Depends(get_payment_service),
):
    """Refund succeeded payments that never got an order."""
    refunded = await service.reconcile(grace_seconds)
    return {
        "refunded": len(refunded),
        "payments": [p.model_dump(mode="json") for p in refunded],
    }
