"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.payments.views import PaymentWebhookView, VerifyPaymentView

urlpatterns = [
    path("payments/verify/", VerifyPaymentView.as_view(), name="payment_verify"),
    path("payments/webhook/", PaymentWebhookView.as_view(), name="payment_webhook"),
]
