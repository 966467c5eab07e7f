import os
import stat

import pytest
from pydantic import ValidationError

from sessionkit.config import (
    SameSite,
    Settings,
    TokenKind,
    get_settings,
    reset_settings_cache,
)


def test_cookie_options_per_token_kind(settings):
    access = settings.cookie_options(TokenKind.ACCESS)
    refresh = settings.cookie_options(TokenKind.REFRESH)
    fingerprint = settings.cookie_options("fingerprint")

    assert (access.name, access.max_age) == ("access_token", 900)
    assert (refresh.name, refresh.max_age) == ("encrypt_refresh_token", 60 * 60 * 24)
    assert (fingerprint.name, fingerprint.max_age) == ("fingerprint_token", 60 * 60 * 24 * 2)


def test_settings_are_frozen(settings):
    with pytest.raises(ValidationError):
        settings.access_token_ttl_seconds = 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"cookie_same_site": "sideways"},
        {"cookie_same_site": "none", "cookie_secure": False},
        {"access_token_ttl_seconds": 0},
        {"refresh_token_ttl_seconds": -5},
        {"fingerprint_token_cookie_name": "bad name"},
        {"access_token_cookie_name": "fingerprint_token"},
        {"cookie_path": "relative"},
        {"secret_key": "too-short"},
    ],
)
def test_malformed_configuration_rejected_at_startup(overrides):
    with pytest.raises(ValidationError):
        Settings(**{"secret_key": "s" * 40, **overrides})


def test_same_site_is_case_insensitive():
    settings = Settings(secret_key="s" * 40, cookie_same_site="Strict")

    assert settings.cookie_same_site is SameSite.STRICT


def test_test_mode_generates_ephemeral_secret():
    first = Settings(test_mode=True)
    second = Settings(test_mode=True)

    assert first.secret_key and len(first.secret_key) >= 32
    assert first.secret_key != second.secret_key


def test_secret_persisted_under_shared_root(tmp_path):
    first = Settings(shared_fs_root=str(tmp_path))
    second = Settings(shared_fs_root=str(tmp_path))

    secret_file = tmp_path / ".session_secret"
    assert first.secret_key == second.secret_key
    assert secret_file.read_text() == first.secret_key
    assert stat.S_IMODE(os.stat(secret_file).st_mode) == 0o600


def test_from_env(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "120")
    monkeypatch.setenv("COOKIE_SECURE", "false")
    monkeypatch.setenv("COOKIE_SAME_SITE", "strict")
    monkeypatch.setenv("REFRESH_TOKEN_POLICY", "append")

    settings = Settings.from_env()

    assert settings.access_token_ttl_seconds == 120
    assert settings.cookie_secure is False
    assert settings.cookie_same_site is SameSite.STRICT
    assert settings.refresh_token_policy == "append"
    assert settings.cookie_options(TokenKind.ACCESS).max_age == 120


def test_get_settings_is_cached_until_reset(monkeypatch):
    reset_settings_cache()
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("JWT_ISSUER", "other-issuer")
    reset_settings_cache()

    assert get_settings().jwt_issuer == "other-issuer"


@pytest.mark.parametrize("name", ["sessão", "a\x00b", "path", "expires", "a b", "a:b"])
def test_cookie_name_must_be_serializable(name):
    with pytest.raises(ValidationError):
        Settings(secret_key="s" * 40, access_token_cookie_name=name)


@pytest.mark.parametrize(
    "domain",
    [
        "example.com; Max-Age=99999999",
        "example.com,evil.com",
        "example .com",
        "example.com\r\nSet-Cookie: x=y",
        "exämple.com",
    ],
)
def test_cookie_domain_cannot_inject_attributes(domain):
    with pytest.raises(ValidationError):
        Settings(secret_key="s" * 40, cookie_domain=domain)


def test_empty_cookie_domain_means_host_only():
    assert Settings(secret_key="s" * 40, cookie_domain="").cookie_domain is None


def test_cookie_path_rejects_control_characters():
    with pytest.raises(ValidationError):
        Settings(secret_key="s" * 40, cookie_path="/app\nSecure")


def test_valid_domain_and_path_accepted():
    settings = Settings(secret_key="s" * 40, cookie_domain=".example.com", cookie_path="/v1/auth")

    assert settings.cookie_domain == ".example.com"
    assert settings.cookie_path == "/v1/auth"
