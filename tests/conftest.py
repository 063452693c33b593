from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.customers.models import Customer
from modules.orders.models import Order
from modules.payments.references import generate_reference


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def admin_user():
    return get_user_model().objects.create_superuser(
        username="ops-admin", email="ops@example.com", password="not-used"
    )


@pytest.fixture()
def staff_user():
    return get_user_model().objects.create_user(
        username="kitchen", email="kitchen@example.com", password="not-used", is_staff=True
    )


@pytest.fixture()
def customer_user():
    return get_user_model().objects.create_user(
        username="buyer", email="buyer@example.com", password="not-used"
    )


@pytest.fixture()
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


@pytest.fixture()
def customer_client(customer_user):
    client = APIClient()
    client.force_authenticate(user=customer_user)
    return client


@pytest.fixture()
def customer():
    return Customer.objects.create(
        name="Ada Obi", email="ada@example.com", phone="+2348000000000"
    )


@pytest.fixture()
def make_order(customer):
    """Factory for orders; defaults to a pending 5000.00 order with a reference."""

    def _make(**overrides):
        values = {
            "customer": customer,
            "customer_name": customer.name,
            "customer_email": customer.email,
            "total_amount": Decimal("5000.00"),
            "delivery_fee": Decimal("0.00"),
            "payment_reference": generate_reference(),
        }
        values.update(overrides)
        return Order.objects.create(**values)

    return _make


@pytest.fixture()
def order(make_order):
    return make_order()
