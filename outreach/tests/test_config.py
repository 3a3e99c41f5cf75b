"""Tests for settings parsing and startup validation."""

import logging

import pytest

from outreach.core.config import validate_config


def test_maintenance_only_disabled_by_literal_false(settings_factory):
    assert settings_factory(MAINTENANCE_ENABLED="false").maintenance_enabled is False
    assert settings_factory(MAINTENANCE_ENABLED="true").maintenance_enabled is True
    assert settings_factory(MAINTENANCE_ENABLED="0").maintenance_enabled is True
    assert settings_factory(MAINTENANCE_ENABLED="").maintenance_enabled is True


def test_basic_auth_requires_both_values(settings_factory):
    assert not settings_factory(BASIC_AUTH_USER="admin").basic_auth_configured
    assert settings_factory(BASIC_AUTH_USER="admin", BASIC_AUTH_PASS="x").basic_auth_configured


def test_usage_store_url_prefers_redis_url(settings_factory):
    cfg = settings_factory(REDIS_URL="redis://primary:6379", KV_URL="rediss://kv:6379")
    assert cfg.usage_store_url == "redis://primary:6379"
    assert settings_factory(KV_URL="rediss://kv:6379").usage_store_url == "rediss://kv:6379"
    assert settings_factory().usage_store_url is None


def test_env_overrides_defaults(monkeypatch):
    from outreach.core.config import Settings

    monkeypatch.setenv("TRIAL_TOKENS", "a,b")
    monkeypatch.setenv("MAINTENANCE_ENABLED", "false")
    cfg = Settings(_env_file=None)

    assert cfg.trial_tokens == ["a", "b"]
    assert cfg.maintenance_enabled is False


def test_valid_config_passes(settings_factory):
    assert validate_config(strict=True, settings_obj=settings_factory())


def test_strict_mode_rejects_overlapping_tokens(settings_factory):
    cfg = settings_factory(MASTER_TOKEN="shared", TRIAL_TOKENS="shared,other")
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=cfg)


def test_strict_mode_rejects_half_basic_auth(settings_factory):
    with pytest.raises(RuntimeError):
        validate_config(strict=True, settings_obj=settings_factory(BASIC_AUTH_PASS="only-pass"))


def test_non_strict_mode_only_warns(settings_factory, caplog):
    cfg = settings_factory(OPENAI_API_KEY=None)
    with caplog.at_level(logging.WARNING, logger="outreach"):
        assert validate_config(strict=False, settings_obj=cfg)
    assert any("OPENAI_API_KEY" in r.getMessage() for r in caplog.records)
