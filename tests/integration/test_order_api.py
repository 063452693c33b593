"""Integration tests for the Order API.

Covers:
- Permissions per action (anonymous, customer, staff, admin).
- Transition, correction and payment reference endpoints.
- Listing with filters and pagination; typed error bodies.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.constants import OrderStatus, PaymentStatus
from modules.payments.references import is_backend_reference

pytestmark = pytest.mark.integration

BASE_URL = "/api/v1/orders/"


def _detail(order, suffix=""):
    return f"{BASE_URL}{order.id}/{suffix}"


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class TestOrderPermissions:
    def test_anonymous_is_rejected(self, api_client, order):
        assert api_client.get(_detail(order)).status_code == 401

    def test_customer_can_read_but_not_transition(self, customer_client, order):
        assert customer_client.get(_detail(order)).status_code == 200
        response = customer_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.CONFIRMED},
            format="json",
        )
        assert response.status_code == 403

    def test_customer_cannot_list(self, customer_client):
        assert customer_client.get(BASE_URL).status_code == 403


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


class TestOrderRead:
    def test_retrieve_includes_history_and_expected_amount(self, staff_client, order):
        staff_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.CONFIRMED},
            format="json",
        )

        response = staff_client.get(_detail(order))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.CONFIRMED
        assert data["expected_amount"] == "5000.00"
        assert data["version"] == 2
        assert len(data["status_history"]) == 1

    def test_retrieve_unknown_order_is_404(self, staff_client):
        response = staff_client.get(f"{BASE_URL}{uuid4()}/")
        assert response.status_code == 404
        assert response.json()["error_code"] == "order_not_found"

    def test_list_filters_by_status(self, admin_client, make_order):
        confirmed = make_order()
        make_order()
        admin_client.post(
            _detail(confirmed, "transition/"),
            {"target_status": OrderStatus.CONFIRMED},
            format="json",
        )

        response = admin_client.get(BASE_URL, {"status": OrderStatus.CONFIRMED})

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["id"] == str(confirmed.id)

    def test_list_is_paginated(self, admin_client, make_order):
        for _ in range(3):
            make_order()
        data = admin_client.get(BASE_URL, {"page_size": 2}).json()
        assert data["count"] == 3
        assert len(data["results"]) == 2
        assert data["next"] is not None


# ---------------------------------------------------------------------------
# Transition / correction
# ---------------------------------------------------------------------------


class TestOrderTransitionEndpoint:
    def test_staff_moves_order_forward(self, staff_client, order):
        response = staff_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.PREPARING, "notes": "kitchen started"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.PREPARING
        assert data["last_actor_id"].startswith("user:")

    def test_backwards_move_is_409(self, staff_client, order):
        staff_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.READY},
            format="json",
        )
        response = staff_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.CONFIRMED},
            format="json",
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "invalid_transition"

    def test_unknown_status_is_400(self, staff_client, order):
        response = staff_client.post(
            _detail(order, "transition/"),
            {"target_status": "teleported"},
            format="json",
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_admin_refund_of_paid_order(self, admin_client, order):
        admin_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.CONFIRMED, "payment_status": PaymentStatus.PAID},
            format="json",
        )
        response = admin_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.REFUNDED, "payment_status": PaymentStatus.REFUNDED},
            format="json",
        )
        assert response.status_code == 200
        assert response.json()["payment_status"] == PaymentStatus.REFUNDED


class TestOrderCorrectEndpoint:
    def test_admin_corrects_backwards(self, admin_client, order):
        admin_client.post(
            _detail(order, "transition/"),
            {"target_status": OrderStatus.READY},
            format="json",
        )
        response = admin_client.post(
            _detail(order, "correct/"),
            {"target_status": OrderStatus.PREPARING, "reason": "not plated yet"},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == OrderStatus.PREPARING
        assert data["status_history"][-1]["is_correction"] is True

    def test_staff_correction_is_409(self, staff_client, order):
        response = staff_client.post(
            _detail(order, "correct/"),
            {"target_status": OrderStatus.PENDING, "reason": "oops"},
            format="json",
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "correction_not_allowed"

    def test_reason_is_required(self, admin_client, order):
        response = admin_client.post(
            _detail(order, "correct/"),
            {"target_status": OrderStatus.PENDING},
            format="json",
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Payment reference
# ---------------------------------------------------------------------------


class TestPaymentReferenceEndpoint:
    def test_assigns_once(self, customer_client, make_order):
        order = make_order(payment_reference=None)
        url = _detail(order, "payment-reference/")

        first = customer_client.post(url, {"client_reference": "mine-123"}, format="json")
        second = customer_client.post(url, {}, format="json")

        assert first.status_code == 200
        reference = first.json()["payment_reference"]
        assert is_backend_reference(reference)
        assert first.json()["expected_amount"] == "5000.00"
        assert second.json()["payment_reference"] == reference
        assert second.json()["version"] == first.json()["version"]

    def test_reference_held_by_another_order_is_not_reused(
        self, customer_client, make_order
    ):
        owner = make_order()
        order = make_order(payment_reference=None)

        response = customer_client.post(
            _detail(order, "payment-reference/"),
            {"client_reference": owner.payment_reference},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["payment_reference"] != owner.payment_reference

    def test_unknown_order_is_404(self, customer_client):
        response = customer_client.post(
            f"{BASE_URL}{uuid4()}/payment-reference/", {}, format="json"
        )
        assert response.status_code == 404
