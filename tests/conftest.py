"""Shared test fixtures."""
import os

# Settings are read at import time; pin them before anything imports storefront.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["COOKIE_SECURE"] = "false"
os.environ["PAYMENT_GATEWAY_LATENCY_SECONDS"] = "0"
os.environ["PAYMENT_RETRY_BACKOFF_SECONDS"] = "0"

import uuid  # noqa: E402

import pytest  # noqa: E402
from factories import TODAY, address_payload, card_payload, cart_item_payload  # noqa: E402

from storefront.domain import AddressType  # noqa: E402
from storefront.gateway import MockPaymentGateway  # noqa: E402
from storefront.repositories.memory import memory_repositories  # noqa: E402
from storefront.services.addresses import AddressService  # noqa: E402
from storefront.services.cart import CartService  # noqa: E402
from storefront.services.checkout import CheckoutService  # noqa: E402
from storefront.services.orders import OrderService  # noqa: E402
from storefront.services.payment_methods import PaymentMethodService  # noqa: E402
from storefront.services.payments import PaymentService  # noqa: E402


# =====================================================
# SERVICES (IN-MEMORY)
# =====================================================

@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def repos():
    return memory_repositories()


@pytest.fixture
def gateway():
    return MockPaymentGateway(success_rate=1.0, latency=0)


@pytest.fixture
def address_service(repos):
    return AddressService(repos.addresses)


@pytest.fixture
def payment_method_service(repos, gateway):
    return PaymentMethodService(repos.payment_methods, gateway, today=lambda: TODAY)


@pytest.fixture
def payment_service(repos, gateway):
    return PaymentService(
        repos.payment_intents,
        repos.payments,
        repos.payment_methods,
        gateway,
        confirm_timeout=1,
        max_attempts=3,
        retry_backoff=0,
    )


@pytest.fixture
def order_service(repos):
    return OrderService(repos.orders)


@pytest.fixture
def cart_service(repos):
    return CartService(repos.carts)


@pytest.fixture
def checkout_service(repos, cart_service, address_service, payment_method_service, payment_service, order_service):
    return CheckoutService(
        repos.checkout_sessions,
        cart_service,
        address_service,
        payment_method_service,
        payment_service,
        order_service,
    )


@pytest.fixture
def ready_customer(user_id, address_service, payment_method_service, cart_service):
    """Customer with default addresses, a saved visa and 60.00 in the cart."""
    shipping = address_service.create(user_id, address_payload(AddressType.shipping))
    billing = address_service.create(user_id, address_payload(AddressType.billing, address2=None))
    card = payment_method_service.create(user_id, card_payload())
    cart_service.add_item(user_id, cart_item_payload("20.00", quantity=3))
    return {"shipping": shipping, "billing": billing, "card": card}


# =====================================================
# HTTP API (SQLITE)
# =====================================================

@pytest.fixture
def client(gateway):
    from fastapi.testclient import TestClient

    from storefront.database import Base, engine
    from storefront.dependencies import get_gateway
    from storefront.main import app

    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


def _create_user(role="user") -> str:
    from storefront.database import SessionLocal
    from storefront.models import User
    from storefront.security import hash_password

    db = SessionLocal()
    try:
        user = User(
            email=f"{uuid.uuid4().hex[:10]}@example.com",
            hashed_password=hash_password("correct-horse"),
            full_name="Jane Doe",
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user.id
    finally:
        db.close()


@pytest.fixture
def auth_headers(client):
    from storefront.security import create_token

    return {"Authorization": f"Bearer {create_token(_create_user(), 'user')}"}


@pytest.fixture
def admin_headers(client):
    from storefront.security import create_token

    return {"Authorization": f"Bearer {create_token(_create_user('admin'), 'admin')}"}
