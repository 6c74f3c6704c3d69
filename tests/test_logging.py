import logging
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from newsletter.core import logging as logging_module
from newsletter.core.logging import PIISafeFilter, setup_logging
from newsletter.core.settings import get_settings


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_pii_filter_redacts_email_addresses(caplog):
    logger = logging.getLogger("test.pii")
    logger.setLevel(logging.INFO)
    logger.filters = []
    logger.addFilter(PIISafeFilter())

    with caplog.at_level(logging.INFO, logger="test.pii"):
        logger.info("Delivery to ursula_le_guin@gmail.com failed")

    assert "ursula_le_guin@gmail.com" not in caplog.text
    assert "[REDACTED]" in caplog.text


def test_pii_filter_redacts_bearer_tokens_and_args(caplog):
    logger = logging.getLogger("test.bearer")
    logger.setLevel(logging.INFO)
    logger.filters = []
    logger.addFilter(PIISafeFilter())

    with caplog.at_level(logging.INFO, logger="test.bearer"):
        logger.info("Calling email API with %s", "Authorization: Bearer s3cr3t-token")

    assert "s3cr3t-token" not in caplog.text
    assert "Bearer [REDACTED]" in caplog.text


def test_pii_filter_redacts_subscription_token_assignment(caplog):
    logger = logging.getLogger("test.token")
    logger.setLevel(logging.INFO)
    logger.filters = []
    logger.addFilter(PIISafeFilter())

    with caplog.at_level(logging.INFO, logger="test.token"):
        logger.info("confirm link ?subscription_token=AbC123xyz&next=1")

    assert "AbC123xyz" not in caplog.text
    assert "subscription_token=[REDACTED]" in caplog.text


def test_setup_logging_configures_once(monkeypatch):
    monkeypatch.setattr(logging_module, "_configured", False)

    with patch("newsletter.core.logging.logging.config.dictConfig") as dict_config:
        setup_logging()
        setup_logging()

    assert dict_config.call_count == 1
    config = dict_config.call_args.args[0]
    assert config["handlers"]["console"]["filters"] == ["pii_safe"]


def test_app_lifespan_sets_up_and_tears_down_logging(monkeypatch, fresh_settings):
    monkeypatch.setenv("WORKER_ENABLED", "false")
    from newsletter.main import app

    with patch("newsletter.api.main.setup_logging") as setup, patch(
        "newsletter.api.main.teardown_logging"
    ) as teardown:
        with TestClient(app):
            setup.assert_called_once_with()
            teardown.assert_not_called()

    teardown.assert_called_once_with()


def test_app_lifespan_stops_in_process_worker_before_teardown(monkeypatch, fresh_settings):
    monkeypatch.setenv("WORKER_ENABLED", "true")
    from newsletter.main import app

    observed = []

    def _worker(_session_factory, _email_client, _policy, shutdown):
        shutdown.wait(10)
        observed.append(shutdown.is_set())

    with patch("newsletter.api.main.run_worker_until_stopped", side_effect=_worker), patch(
        "newsletter.api.main.get_session_factory"
    ), patch("newsletter.api.main.get_email_client"), patch("newsletter.api.main.setup_logging"), patch(
        "newsletter.api.main.teardown_logging"
    ) as teardown:
        with TestClient(app):
            pass

    assert observed == [True]
    teardown.assert_called_once_with()
