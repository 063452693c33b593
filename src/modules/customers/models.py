"""Customer directory model.

The ordering platform owns customer CRUD; this core only reads the
directory to resolve a contact address when an order carries none.

- E-mail is unique and stored lower-cased.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel);
  soft-deleted or inactive customers are never used as recipients.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import SoftDeleteModel


class Customer(SoftDeleteModel):
    """Customer directory entry."""

    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=254, unique=True)
    phone = models.CharField(max_length=20, blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "customers"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_active"], name="customers_active_idx"),
        ]

    def save(self, *args, **kwargs) -> None:
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    @property
    def can_receive_notifications(self) -> bool:
        return self.is_active and not self.is_deleted and bool(self.email)

    def __str__(self) -> str:
        return f"{self.name} <{self.email}>"
