"""Customer directory repository interface (read-only)."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.customers.models import Customer


class ICustomerRepository(IRepository["Customer"]):
    """Repository contract for the customer directory."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[Customer]:
        """Retrieve a customer by email address."""

    @abstractmethod
    def get_contact(self, id: str) -> Optional[Customer]:
        """Retrieve an alive, active customer that can receive messages."""
