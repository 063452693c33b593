"""Unit tests for the suppression list."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.core.authorization import ActorContext, ActorRole
from modules.core.exceptions import ValidationError
from modules.core.models import AuditLog
from modules.notifications.constants import (
    ENQUEUE_BLOCKING_REASONS,
    SuppressionReason,
)
from modules.notifications.exceptions import (
    SuppressionChangeNotAllowed,
    SuppressionNotFound,
)
from modules.notifications.suppression import SuppressionList, suppression_keys

pytestmark = pytest.mark.unit

ADMIN = ActorContext("user:1", ActorRole.ADMIN)
STAFF = ActorContext("user:2", ActorRole.STAFF)


@pytest.fixture()
def suppression():
    return SuppressionList()


class TestSuppressionKeys:
    def test_address_and_domain(self):
        assert suppression_keys(" Ada@Example.com") == ["ada@example.com", "@example.com"]

    def test_domain_entry_has_no_extra_key(self):
        assert suppression_keys("@example.com") == ["@example.com"]


class TestAdd:
    def test_add_is_idempotent(self, suppression):
        first, created = suppression.add("Bounce@example.com", SuppressionReason.HARD_BOUNCE)
        second, created_again = suppression.add("bounce@example.com", SuppressionReason.HARD_BOUNCE)

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert first.recipient == "bounce@example.com"

    def test_unknown_reason(self, suppression):
        with pytest.raises(ValidationError):
            suppression.add("x@example.com", "annoyed")

    def test_blank_recipient(self, suppression):
        with pytest.raises(ValidationError):
            suppression.add("  ", SuppressionReason.COMPLAINT)

    def test_blocking_reason_can_be_filtered(self, suppression):
        suppression.add("x@example.com", SuppressionReason.UNSUBSCRIBE)

        assert suppression.blocking_reason("x@example.com") == SuppressionReason.UNSUBSCRIBE
        assert not suppression.is_suppressed(
            "x@example.com", [SuppressionReason.HARD_BOUNCE]
        )

    def test_domain_entry_blocks_every_address(self, suppression):
        suppression.add("@spam.example", SuppressionReason.COMPLAINT)
        assert suppression.is_suppressed("anyone@spam.example")
        assert not suppression.is_suppressed("anyone@example.com")

    def test_bounce_after_unsubscribe_escalates_the_entry(self, suppression):
        suppression.add("ada@example.com", SuppressionReason.UNSUBSCRIBE)
        assert suppression.blocking_reason(
            "ada@example.com", ENQUEUE_BLOCKING_REASONS
        ) is None

        entry, created = suppression.add(
            "ada@example.com", SuppressionReason.HARD_BOUNCE, notes="550 no mailbox"
        )

        assert created is False
        assert entry.reason == SuppressionReason.HARD_BOUNCE
        assert (
            suppression.blocking_reason("ada@example.com", ENQUEUE_BLOCKING_REASONS)
            == SuppressionReason.HARD_BOUNCE
        )
        audit = AuditLog.objects.get(action="suppression_escalated")
        assert audit.details["previous_reason"] == SuppressionReason.UNSUBSCRIBE

    def test_unsubscribe_never_downgrades_a_bounce(self, suppression):
        suppression.add("ada@example.com", SuppressionReason.HARD_BOUNCE)
        entry, _ = suppression.add("ada@example.com", SuppressionReason.UNSUBSCRIBE)

        assert entry.reason == SuppressionReason.HARD_BOUNCE
        assert not AuditLog.objects.filter(action="suppression_escalated").exists()


class TestReactivate:
    def test_admin_reactivates(self, suppression):
        entry, _ = suppression.add("x@example.com", SuppressionReason.HARD_BOUNCE)

        updated = suppression.reactivate(str(entry.id), ADMIN, notes="mailbox fixed")

        assert updated.is_active is False
        assert updated.reactivated_by == "user:1"
        assert not suppression.is_suppressed("x@example.com")
        assert AuditLog.objects.filter(action="suppression_reactivated").exists()

    def test_staff_cannot_reactivate(self, suppression):
        entry, _ = suppression.add("x@example.com", SuppressionReason.HARD_BOUNCE)
        with pytest.raises(SuppressionChangeNotAllowed):
            suppression.reactivate(str(entry.id), STAFF)

    def test_new_bounce_suppresses_again(self, suppression):
        entry, _ = suppression.add("x@example.com", SuppressionReason.HARD_BOUNCE)
        suppression.reactivate(str(entry.id), ADMIN)

        again, created = suppression.add("x@example.com", SuppressionReason.COMPLAINT)

        assert created is False
        assert again.is_active is True
        assert suppression.blocking_reason("x@example.com") == SuppressionReason.COMPLAINT

    @pytest.mark.parametrize("entry_id", ["not-a-uuid", None])
    def test_unknown_entry(self, suppression, entry_id):
        with pytest.raises(SuppressionNotFound):
            suppression.reactivate(entry_id or str(uuid4()), ADMIN)
