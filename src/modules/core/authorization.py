"""Explicit authorization context passed into every entry point.

Services never ask "who is calling?" through globals or the request;
callers build an ``ActorContext`` and hand it over.  The context carries
only the identity stamped on audit rows and the role used by the few
operations restricted to privileged actors.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.db import models


class ActorRole(models.TextChoices):
    SYSTEM = "system", "System"
    ADMIN = "admin", "Admin"
    STAFF = "staff", "Staff"
    CUSTOMER = "customer", "Customer"
    GATEWAY = "gateway", "Payment gateway"


PRIVILEGED_ROLES: frozenset[str] = frozenset({ActorRole.SYSTEM, ActorRole.ADMIN})


@dataclass(frozen=True)
class ActorContext:
    """Who is performing an operation."""

    actor_id: str
    role: str = ActorRole.SYSTEM

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    @classmethod
    def system(cls, name: str = "system") -> ActorContext:
        return cls(actor_id=name, role=ActorRole.SYSTEM)

    @classmethod
    def from_user(cls, user) -> ActorContext:
        """Build a context from a Django user (admin/staff/customer)."""
        if getattr(user, "is_superuser", False):
            role = ActorRole.ADMIN
        elif getattr(user, "is_staff", False):
            role = ActorRole.STAFF
        else:
            role = ActorRole.CUSTOMER
        return cls(actor_id=f"user:{user.pk}", role=role)

    def __str__(self) -> str:
        return f"{self.role}:{self.actor_id}"
