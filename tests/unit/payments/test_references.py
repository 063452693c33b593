"""Unit tests for backend payment references."""

from __future__ import annotations

import pytest

from modules.core.exceptions import ValidationError
from modules.payments.references import (
    REFERENCE_PATTERN,
    ensure_backend_reference,
    generate_reference,
    is_backend_reference,
    to_base36,
    validate_reference,
)

pytestmark = pytest.mark.unit


class TestGenerateReference:
    def test_shape(self):
        reference = generate_reference()
        assert reference.startswith("txn_")
        assert REFERENCE_PATTERN.fullmatch(reference)

    def test_references_are_unique(self):
        assert len({generate_reference() for _ in range(200)}) == 200

    @pytest.mark.parametrize("value,expected", [(0, "0"), (35, "z"), (36, "10")])
    def test_base36(self, value, expected):
        assert to_base36(value) == expected

    def test_base36_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base36(-1)


class TestValidateReference:
    def test_strips_whitespace(self):
        reference = generate_reference()
        assert validate_reference(f"  {reference} ") == reference

    @pytest.mark.parametrize("value", [None, "", "   ", "ref-123", "txn_abc_xyz"])
    def test_rejects_missing_or_malformed(self, value):
        with pytest.raises(ValidationError):
            validate_reference(value)


class TestEnsureBackendReference:
    def test_keeps_backend_reference(self):
        reference = generate_reference()
        assert ensure_backend_reference(reference) == reference

    def test_replaces_client_reference(self):
        replaced = ensure_backend_reference("my-own-ref")
        assert replaced != "my-own-ref"
        assert is_backend_reference(replaced)

    def test_generates_when_missing(self):
        assert is_backend_reference(ensure_backend_reference(None))
