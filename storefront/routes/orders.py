from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from storefront.dependencies import get_order_service
from storefront.domain import Order, OrderStatus, Pagination
from storefront.schemas import OrderStatusUpdate
from storefront.security import CurrentUser, get_current_user, require_admin
from storefront.services.orders import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


# =====================================================
# HELPERS
# =====================================================

def _serialize_order_summary(o: Order) -> dict:
    return {
        "id":                 o.id,
        "order_number":       o.order_number,
        "status":             o.status.value,
        "total":              str(o.total),
        "item_count":         sum(i.quantity for i in o.items),
        "created_at":         o.created_at.isoformat() if o.created_at else None,
        "estimated_delivery": o.estimated_delivery.isoformat() if o.estimated_delivery else None,
        "tracking_number":    o.tracking_number,
    }


def _serialize_order_detail(o: Order) -> dict:
    return o.model_dump(mode="json")


def _serialize_page(orders: List[Order], pagination: Pagination) -> dict:
    return {
        "data": [_serialize_order_summary(o) for o in orders],
        "pagination": pagination.model_dump(),
    }


# =====================================================
# USER: MY ORDERS
# =====================================================
@router.get("", status_code=status.HTTP_200_OK)
def list_my_orders(
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return _serialize_page(*service.list_page(user.id, status_filter, page, limit))


@router.get("/{order_id}", status_code=status.HTTP_200_OK)
def get_my_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return _serialize_order_detail(service.get(user.id, order_id))


@router.post("/{order_id}/cancel", status_code=status.HTTP_200_OK)
def cancel_my_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Only pending or processing orders can be cancelled."""
    return _serialize_order_detail(service.cancel(user.id, order_id))


# =====================================================
# ADMIN: STATUS
# =====================================================
@router.patch(
    "/admin/{order_id}/status",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_admin)],
)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    service: OrderService = Depends(get_order_service),
):
    order = service.update_status(order_id, payload.status, payload.tracking_number)
    return _serialize_order_detail(order)


# =====================================================
# ADMIN: ALL ORDERS / STATS
# =====================================================
@router.get("/admin/all", status_code=status.HTTP_200_OK, dependencies=[Depends(require_admin)])
def list_all_orders(
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    user_id: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    service: OrderService = Depends(get_order_service),
):
    orders, pagination = service.list_all(status_filter, user_id, page, limit)
    return {
        "data": [{**_serialize_order_summary(o), "user_id": o.user_id} for o in orders],
        "pagination": pagination.model_dump(),
    }


@router.get("/admin/stats", status_code=status.HTTP_200_OK, dependencies=[Depends(require_admin)])
def order_stats(service: OrderService = Depends(get_order_service)):
    return service.stats().model_dump(mode="json")
