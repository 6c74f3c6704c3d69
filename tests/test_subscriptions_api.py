"""Tests for POST /subscriptions and GET /subscriptions/confirm."""
from __future__ import annotations

import re

from newsletter.core.errors import DeliveryError
from newsletter.db.repositories import SubscriptionRepository

_TOKEN_RE = re.compile(r"subscription_token=([A-Za-z0-9]+)")


def _subscribe(client, name: str = "le guin", email: str = "ursula_le_guin@gmail.com"):
    return client.post("/subscriptions", data={"name": name, "email": email})


def _sent_token(email_client) -> str:
    _, subject, html_content, text_content = email_client.send_email.call_args.args
    assert subject == "Welcome!"
    html_token = _TOKEN_RE.search(html_content).group(1)
    text_token = _TOKEN_RE.search(text_content).group(1)
    assert html_token == text_token
    return text_token


class TestSubscribe:
    def test_valid_form_stores_pending_subscriber_and_sends_confirmation(
        self, client, session_factory, email_client
    ):
        response = _subscribe(client)

        assert response.status_code == 200
        assert response.json() == {"status": "pending_confirmation"}
        with session_factory() as db:
            subscriber = SubscriptionRepository(db).get_by_email("ursula_le_guin@gmail.com")
        assert subscriber.name == "le guin"
        assert subscriber.status == "pending_confirmation"
        email_client.send_email.assert_called_once()
        assert email_client.send_email.call_args.args[0].value == "ursula_le_guin@gmail.com"
        _sent_token(email_client)

    def test_invalid_fields_are_rejected_without_sending(self, client, email_client):
        for name, email in (("", "ursula_le_guin@gmail.com"), ("Ursula", ""), ("Ursula", "definitely-not-an-email")):
            response = _subscribe(client, name=name, email=email)
            assert response.status_code == 400, (name, email)

        email_client.send_email.assert_not_called()

    def test_missing_fields_are_a_bad_request(self, client):
        assert client.post("/subscriptions", data={"name": "le guin"}).status_code == 400
        assert client.post("/subscriptions", data={"email": "ursula_le_guin@gmail.com"}).status_code == 400

    def test_resubscribing_while_pending_sends_a_fresh_link(self, client, session_factory, email_client):
        _subscribe(client)
        first = _sent_token(email_client)
        _subscribe(client)
        second = _sent_token(email_client)

        assert first != second
        assert email_client.send_email.call_count == 2
        with session_factory() as db:
            assert SubscriptionRepository(db).count() == 1

    def test_email_failure_returns_500(self, client, email_client):
        email_client.send_email.side_effect = DeliveryError("Email API returned 500")

        response = _subscribe(client)

        assert response.status_code == 500


class TestConfirm:
    def test_link_confirms_the_subscriber(self, client, session_factory, email_client):
        _subscribe(client)
        token = _sent_token(email_client)

        response = client.get("/subscriptions/confirm", params={"subscription_token": token})

        assert response.status_code == 200
        with session_factory() as db:
            assert SubscriptionRepository(db).get_by_email("ursula_le_guin@gmail.com").status == "confirmed"

    def test_confirmed_subscriber_is_not_emailed_again(self, client, email_client):
        _subscribe(client)
        client.get("/subscriptions/confirm", params={"subscription_token": _sent_token(email_client)})

        response = _subscribe(client)

        assert response.json() == {"status": "confirmed"}
        assert email_client.send_email.call_count == 1

    def test_unknown_token_is_unauthorized(self, client):
        response = client.get("/subscriptions/confirm", params={"subscription_token": "doesnotexist"})

        assert response.status_code == 401

    def test_missing_token_is_a_bad_request(self, client):
        assert client.get("/subscriptions/confirm").status_code == 400
