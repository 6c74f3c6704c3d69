"""Tests for newsletter/domain/subscriber.py."""
from __future__ import annotations

import pytest

from newsletter.core.errors import ValidationError
from newsletter.domain.subscriber import NewSubscriber, SubscriberEmail, SubscriberName


# ===========================================================================
# SubscriberEmail
# ===========================================================================

class TestSubscriberEmail:
    def test_normalizes_case_and_whitespace(self):
        assert SubscriberEmail.parse("  Ursula@Example.COM ").value == "ursula@example.com"

    @pytest.mark.parametrize("raw", ["", "   ", "ursuladomain.com", "@domain.com", "ursula@", "ursula@domain"])
    def test_rejects_malformed_addresses(self, raw):
        with pytest.raises(ValidationError):
            SubscriberEmail.parse(raw)

    def test_rejects_overlong_address(self):
        with pytest.raises(ValidationError, match="longer than"):
            SubscriberEmail.parse("a" * 310 + "@example.com")


# ===========================================================================
# SubscriberName
# ===========================================================================

class TestSubscriberName:
    def test_accepts_a_plain_name(self):
        assert str(SubscriberName.parse(" Ursula Le Guin ")) == "Ursula Le Guin"

    def test_accepts_exactly_256_characters(self):
        assert len(SubscriberName.parse("ё" * 256).value) == 256

    def test_rejects_257_characters(self):
        with pytest.raises(ValidationError):
            SubscriberName.parse("a" * 257)

    @pytest.mark.parametrize("raw", ["", "   "])
    def test_rejects_blank_names(self, raw):
        with pytest.raises(ValidationError, match="empty"):
            SubscriberName.parse(raw)

    @pytest.mark.parametrize("char", list('/()"<>\\{}'))
    def test_rejects_forbidden_characters(self, char):
        with pytest.raises(ValidationError, match="forbidden"):
            SubscriberName.parse(f"Ursula{char}")


def test_new_subscriber_bundles_both_fields():
    subscriber = NewSubscriber.parse(email="LE_GUIN@example.com", name="Ursula")

    assert subscriber.email.value == "le_guin@example.com"
    assert subscriber.name.value == "Ursula"
