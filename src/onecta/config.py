from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_THANK_YOU_HTML = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Authorization Complete</title>
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Arial, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            background: #f4f6f8;
        }
        .container {
            background: white;
            padding: 3rem;
            border-radius: 10px;
            box-shadow: 0 10px 25px rgba(0,0,0,0.2);
            text-align: center;
            max-width: 400px;
        }
        h1 { color: #2d3748; }
        p { color: #718096; line-height: 1.6; }
    </style>
</head>
<body>
    <div class="container">
        <h1>Authorization Complete!</h1>
        <p>The Onecta client received its authorization code. You can close this window.</p>
    </div>
</body>
</html>
"""


def default_certificate_dir() -> Path:
    """Directory searched for ``cert.key``/``cert.pem`` when none is configured."""
    return Path(__file__).resolve().parents[2] / "cert"


class OnectaClientConfig(BaseSettings):
    """Callback server configuration loaded from environment variables.

    Every field can be set through the environment variable of the same name
    (case-insensitive) or a ``.env`` file in the working directory.
    """

    # TLS material
    certificate_path: Optional[str] = Field(default=None)

    # Listener
    oidc_callback_server_addr: str = Field(default="127.0.0.1")
    oidc_callback_server_port: int = Field(default=8582, ge=0, le=65535)
    oidc_callback_server_baseurl: str = Field(default="https://daikin.local:8582")

    # Flow
    oidc_authorization_timeout: float = Field(default=300)
    onecta_oidc_auth_thank_you_html: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("oidc_authorization_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("oidc_authorization_timeout must be positive")
        return value

    def resolved_certificate_path(self) -> Path:
        if self.certificate_path:
            return Path(self.certificate_path)
        return default_certificate_dir()

    def thank_you_html(self) -> str:
        if self.onecta_oidc_auth_thank_you_html is not None:
            return self.onecta_oidc_auth_thank_you_html
        return DEFAULT_THANK_YOU_HTML


@lru_cache()
def get_settings() -> OnectaClientConfig:
    return OnectaClientConfig()
