"""Tests for the duplicate-registration guard."""

import pytest

from luhive.core.duplicate_guard import (
    ALREADY_REGISTERED,
    VERIFICATION_PENDING,
    is_duplicate_error,
    sanitize_duplicate_error,
)
from luhive.ports.store_port import BackendError


class TestIsDuplicateError:
    def test_unique_violation_code(self):
        assert is_duplicate_error({"code": "23505", "message": "boom"})

    @pytest.mark.parametrize("message", [
        'duplicate key value violates unique constraint "x"',
        "Unique Constraint failed",
        "Key (email)=(a@b.c) already exists.",
    ])
    def test_message_markers(self, message):
        assert is_duplicate_error({"message": message})

    def test_backend_error_object(self):
        assert is_duplicate_error(BackendError("whatever", code="23505"))

    def test_other_errors(self):
        assert not is_duplicate_error({"code": "42501", "message": "permission denied"})
        assert not is_duplicate_error(None)
        assert not is_duplicate_error({})


class TestSanitizeDuplicateError:
    def test_none_error(self):
        assert sanitize_duplicate_error(None) is None

    def test_non_duplicate_returns_none(self):
        err = BackendError("connection reset", code="08006")
        assert sanitize_duplicate_error(err, email="a@b.c", is_verified=False) is None

    def test_verified_duplicate(self):
        err = BackendError("dup", code="23505")
        assert sanitize_duplicate_error(err, email="a@b.c", is_verified=True) == ALREADY_REGISTERED

    def test_unverified_duplicate(self):
        err = BackendError("dup", code="23505")
        assert sanitize_duplicate_error(err, email="a@b.c", is_verified=False) == VERIFICATION_PENDING

    def test_unknown_verification_defaults_to_registered(self):
        err = {"message": "duplicate key"}
        assert sanitize_duplicate_error(err, email="a@b.c") == ALREADY_REGISTERED

    def test_no_email_defaults_to_registered(self):
        err = {"code": "23505"}
        assert sanitize_duplicate_error(err, is_verified=False) == ALREADY_REGISTERED
