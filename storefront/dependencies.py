"""FastAPI dependencies wiring the services to the request's DB session."""
from functools import lru_cache

from fastapi import Depends
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from storefront.database import get_db
from storefront.gateway import MockPaymentGateway, PaymentGateway
from storefront.repositories.base import Repositories
from storefront.repositories.sql import sql_repositories
from storefront.services.addresses import AddressService
from storefront.services.cart import CartService
from storefront.services.checkout import CheckoutService
from storefront.services.orders import OrderService
from storefront.services.payment_methods import PaymentMethodService
from storefront.services.payments import PaymentService


# =========================
# INFRASTRUCTURE
# =========================

@lru_cache
def get_gateway() -> PaymentGateway:
    # One gateway per process; it holds the idempotency cache.
    return MockPaymentGateway()


def get_repositories(db: Session = Depends(get_db)) -> Repositories:
    return sql_repositories(db)


# =========================
# SERVICES
# =========================

# Services that await the gateway run their SQL calls in the threadpool,
# keeping blocking I/O off the event loop.
def _payment_service(repos: Repositories, gateway: PaymentGateway) -> PaymentService:
    return PaymentService(
        repos.payment_intents,
        repos.payments,
        repos.payment_methods,
        gateway,
        run_sync=run_in_threadpool,
    )


def get_address_service(repos: Repositories = Depends(get_repositories)) -> AddressService:
    return AddressService(repos.addresses)


def get_payment_method_service(
    repos: Repositories = Depends(get_repositories),
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentMethodService:
    return PaymentMethodService(repos.payment_methods, gateway)


def get_payment_service(
    repos: Repositories = Depends(get_repositories),
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentService:
    return _payment_service(repos, gateway)


def get_order_service(repos: Repositories = Depends(get_repositories)) -> OrderService:
    return OrderService(repos.orders)


def get_cart_service(repos: Repositories = Depends(get_repositories)) -> CartService:
    return CartService(repos.carts)


def get_checkout_service(
    repos: Repositories = Depends(get_repositories),
    gateway: PaymentGateway = Depends(get_gateway),
) -> CheckoutService:
    return CheckoutService(
        repos.checkout_sessions,
        CartService(repos.carts),
        AddressService(repos.addresses),
        PaymentMethodService(repos.payment_methods, gateway),
        _payment_service(repos, gateway),
        OrderService(repos.orders),
        run_sync=run_in_threadpool,
    )
