"""Tests for FleetCronSettings."""

import pytest

from fleetcron.core.settings import FleetCronSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in [
        "FLEETCRON_REDIS_URLS",
        "FLEETCRON_NOTIFIER_TRANSPORT",
        "FLEETCRON_NOTIFIER_WEBHOOK_URL",
        "FLEETCRON_FATAL_ON_LEASE_FAILURE",
        "FLEETCRON_LOCK_NAMESPACE",
    ]:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = FleetCronSettings()
    assert settings.redis_urls == []
    assert settings.lock_namespace == "fleetcron:lease:"
    assert settings.fatal_on_lease_failure is False
    assert settings.default_timezone == "UTC"
    assert settings.lock_store_options() is None
    assert settings.notifier_config() is None


def test_redis_urls_from_env(monkeypatch):
    monkeypatch.setenv("FLEETCRON_REDIS_URLS", '["redis://a:6379/0", "redis://b:6379/0"]')
    monkeypatch.setenv("FLEETCRON_FATAL_ON_LEASE_FAILURE", "true")
    settings = FleetCronSettings()
    options = settings.lock_store_options()
    assert options.urls == ["redis://a:6379/0", "redis://b:6379/0"]
    assert settings.fatal_on_lease_failure is True


def test_notifier_config_from_env(monkeypatch):
    monkeypatch.setenv("FLEETCRON_NOTIFIER_TRANSPORT", "slack")
    monkeypatch.setenv("FLEETCRON_NOTIFIER_WEBHOOK_URL", "https://hooks.slack.test/x")
    config = FleetCronSettings().notifier_config()
    assert config.transport == "slack"
    assert config.webhook_url == "https://hooks.slack.test/x"
    assert config.channel_name == "#alerts"


def test_env_file(tmp_path):
    (tmp_path / ".env").write_text("FLEETCRON_LOCK_NAMESPACE=acme:lease:\n")
    assert FleetCronSettings().lock_namespace == "acme:lease:"
