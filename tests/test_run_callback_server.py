from __future__ import annotations

import pytest

import run_callback_server
from src.onecta.config import get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_missing_certificates_exit_with_error(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("CERTIFICATE_PATH", str(tmp_path))
    monkeypatch.setenv("OIDC_CALLBACK_SERVER_PORT", "0")

    status = run_callback_server.main(["--state", "abc123", "--auth-url", "https://idp.example.com/authorize", "--no-browser"])

    assert status == 1
    assert "Authorization failed" in capsys.readouterr().err


def test_state_and_auth_url_are_required():
    with pytest.raises(SystemExit):
        run_callback_server.main(["--state", "abc123"])
