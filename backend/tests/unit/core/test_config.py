"""Unit tests for environment-driven configuration helpers."""

from __future__ import annotations

import pytest
from authcore.core.config import (
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    env_bool,
    env_int,
    get_config,
)
from authcore.factory import create_app


@pytest.mark.parametrize(
    "raw, expected",
    [("1", True), ("Yes", True), ("on", True), ("0", False), ("nope", False)],
)
def test_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("AUTHCORE_FLAG", raw)
    assert env_bool("AUTHCORE_FLAG") is expected


def test_env_bool_default(monkeypatch):
    monkeypatch.delenv("AUTHCORE_FLAG", raising=False)
    assert env_bool("AUTHCORE_FLAG", True) is True


def test_env_int(monkeypatch):
    monkeypatch.setenv("AUTHCORE_NUM", " 42 ")
    assert env_int("AUTHCORE_NUM", 1) == 42
    monkeypatch.setenv("AUTHCORE_NUM", "")
    assert env_int("AUTHCORE_NUM", 1) == 1
    monkeypatch.setenv("AUTHCORE_NUM", "many")
    with pytest.raises(ValueError):
        env_int("AUTHCORE_NUM", 1)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("production", ProductionConfig),
        ("TESTING", TestingConfig),
        ("unknown", DevelopmentConfig),
    ],
)
def test_get_config(monkeypatch, name, expected):
    monkeypatch.setenv("APP_ENV", name)
    assert get_config() is expected


def test_create_app_accepts_config_name():
    app = create_app("testing", instance_relative_config=False)
    assert app.config["TESTING"] is True
    assert app.config["REDIS_URL"] is None
    assert "/api/v1/auth/login" in {rule.rule for rule in app.url_map.iter_rules()}
