from datetime import datetime, timedelta, timezone

import pytest

from gymflow import config
from gymflow.models.domain import Credential
from gymflow.utils import (
    as_utc_naive,
    capacity_percentage,
    generate_qr_code,
    is_valid_rut_format,
    normalize_rut,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("12.345.678-5", "12345678-5"),
        (" 9.876.543-k ", "9876543-K"),
        ("123456785", "12345678-5"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_rut(raw, expected):
    assert normalize_rut(raw) == expected


@pytest.mark.parametrize("rut,ok", [("12345678-5", True), ("1234567-K", True), ("12-3", False), ("abc", False)])
def test_rut_format(rut, ok):
    assert is_valid_rut_format(rut) is ok


@pytest.mark.parametrize(
    "current,maximum,expected",
    [(0, 10, 0), (1, 3, 33), (1, 8, 13), (1, 200, 1), (10, 10, 100), (5, 0, 0)],
)
def test_capacity_percentage_rounds_half_up(current, maximum, expected):
    assert capacity_percentage(current, maximum) == expected


def test_as_utc_naive():
    aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=-3)))
    assert as_utc_naive(aware) == datetime(2024, 1, 1, 15, 0)
    assert as_utc_naive(None) is None


def test_qr_codes_are_distinct():
    codes = {generate_qr_code() for _ in range(50)}
    assert len(codes) == 50
    assert all(len(c) == 16 for c in codes)


def test_credential_keeps_most_specific_field():
    cred = Credential.of(user_id=" ", rut="12.345.678-5", qr_code="ABC")
    assert cred.user_id is None
    assert cred.rut == "12345678-5"
    assert not cred.is_empty
    assert Credential.of().is_empty


def test_simulator_toggle(monkeypatch):
    assert config.simulator_enabled() is True
    monkeypatch.setenv("ENV", "production")
    assert config.simulator_enabled() is False
    monkeypatch.setenv("ENABLE_SIMULATOR", "true")
    assert config.simulator_enabled() is True


def test_session_secret_required_in_production(monkeypatch):
    monkeypatch.delenv("SESSION_SECRET", raising=False)
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        config.get_session_secret()


def test_membership_prices(monkeypatch):
    assert config.membership_prices()["BASIC"] == 19990
    monkeypatch.setenv("MEMBERSHIP_PRICES", "basic=1000, gold=abc ,PREMIUM=5000")
    assert config.membership_prices() == {"BASIC": 1000, "PREMIUM": 5000}


def test_app_timezone_falls_back_to_utc(monkeypatch):
    monkeypatch.setenv("APP_TIMEZONE", "Mars/Olympus")
    assert config.app_timezone() is timezone.utc


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("CHECKIN_MAX_RETRIES", "0")
    assert config.checkin_max_retries() == 1
    monkeypatch.setenv("CORS_ORIGINS", "http://a, ,http://b")
    assert config.env_list("CORS_ORIGINS") == ["http://a", "http://b"]
    monkeypatch.setenv("MEMBERSHIP_DAYS", "x")
    assert config.membership_days() == 30
