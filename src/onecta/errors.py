"""Failure causes surfaced by the OIDC callback server."""

from __future__ import annotations


class OIDCCallbackError(Exception):
    """Base class for every callback server failure."""


class CertificateLoadError(OIDCCallbackError, OSError):
    """The TLS private key or certificate could not be read."""


class CallbackBindError(OIDCCallbackError, OSError):
    """The listener could not bind or listen on the configured address."""


class AuthorizationTimeoutError(OIDCCallbackError, TimeoutError):
    """No valid redirect arrived within ``oidc_authorization_timeout``."""

    def __init__(self, message: str = "Authorization time out") -> None:
        super().__init__(message)


class CallbackTransportError(OIDCCallbackError):
    """The listener stopped serving before the flow completed."""
