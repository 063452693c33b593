"""Django ORM implementation of the Customer directory repository.

Error handling follows the Null Object pattern: methods return ``None``
instead of raising; the Service Layer decides how to treat a missing
customer.
"""

from __future__ import annotations

from typing import Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.customers.models import Customer
from modules.customers.repositories.interfaces import ICustomerRepository

logger = structlog.get_logger(__name__)


class CustomerDjangoRepository(ICustomerRepository):
    """Concrete Customer repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Customer]:
        """Retrieve a customer by primary key.

        Returns ``None`` for non-existent or invalid IDs (e.g. malformed UUID).
        """
        try:
            return Customer.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def save(self, entity: Customer) -> Customer:
        entity.save()
        logger.info("customer.saved", customer_id=str(entity.id))
        return entity

    def get_by_email(self, email: str) -> Optional[Customer]:
        return Customer.objects.alive().filter(email=email.strip().lower()).first()

    def get_contact(self, id: str) -> Optional[Customer]:
        try:
            customer = Customer.objects.alive().filter(id=id, is_active=True).first()
        except (ValueError, ValidationError):
            return None
        if customer is None or not customer.can_receive_notifications:
            return None
        return customer
