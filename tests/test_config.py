from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src.onecta.config import (
    DEFAULT_THANK_YOU_HTML,
    OnectaClientConfig,
    default_certificate_dir,
    get_settings,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (
        "CERTIFICATE_PATH",
        "OIDC_CALLBACK_SERVER_ADDR",
        "OIDC_CALLBACK_SERVER_PORT",
        "OIDC_CALLBACK_SERVER_BASEURL",
        "OIDC_AUTHORIZATION_TIMEOUT",
        "ONECTA_OIDC_AUTH_THANK_YOU_HTML",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    config = OnectaClientConfig()

    assert config.certificate_path is None
    assert config.oidc_callback_server_addr == "127.0.0.1"
    assert config.oidc_callback_server_port == 8582
    assert config.oidc_authorization_timeout == 300
    assert config.onecta_oidc_auth_thank_you_html is None


def test_default_certificate_dir_is_repository_cert_folder():
    repo_root = Path(__file__).resolve().parents[1]

    assert default_certificate_dir() == repo_root / "cert"
    assert OnectaClientConfig().resolved_certificate_path() == repo_root / "cert"


def test_configured_certificate_path(tmp_path):
    config = OnectaClientConfig(certificate_path=str(tmp_path))

    assert config.resolved_certificate_path() == tmp_path


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("OIDC_CALLBACK_SERVER_PORT", "9443")
    monkeypatch.setenv("OIDC_AUTHORIZATION_TIMEOUT", "2.5")
    monkeypatch.setenv("ONECTA_OIDC_AUTH_THANK_YOU_HTML", "<p>done</p>")

    settings = get_settings()

    assert settings.oidc_callback_server_port == 9443
    assert settings.oidc_authorization_timeout == 2.5
    assert settings.thank_you_html() == "<p>done</p>"


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_thank_you_html_falls_back_to_default():
    assert OnectaClientConfig().thank_you_html() == DEFAULT_THANK_YOU_HTML


def test_empty_thank_you_override_is_kept():
    assert OnectaClientConfig(onecta_oidc_auth_thank_you_html="").thank_you_html() == ""


@pytest.mark.parametrize("timeout", [0, -1])
def test_non_positive_timeout_rejected(timeout):
    with pytest.raises(ValidationError):
        OnectaClientConfig(oidc_authorization_timeout=timeout)


def test_invalid_port_rejected():
    with pytest.raises(ValidationError):
        OnectaClientConfig(oidc_callback_server_port=70000)
