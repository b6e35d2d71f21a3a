"""
Transient HTTPS listener that captures the OIDC authorization-code redirect.

One call binds the configured address, serves requests until the identity
provider redirects back with the expected state, and always releases the
listener before returning the code or raising.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import ssl
from pathlib import Path
from typing import Optional, Tuple

import uvicorn

from .callback_app import create_callback_app
from .config import OnectaClientConfig
from .errors import (
    AuthorizationTimeoutError,
    CallbackBindError,
    CallbackTransportError,
    CertificateLoadError,
)

logger = logging.getLogger(__name__)

KEY_FILENAME = "cert.key"
CERT_FILENAME = "cert.pem"
LISTEN_BACKLOG = 16


class OIDCCallbackServer:
    """Single-use callback listener for one login attempt."""

    def __init__(self, config: OnectaClientConfig, oidc_state: str, auth_url: str):
        self.config = config
        self.oidc_state = oidc_state
        self.auth_url = auth_url
        self.port: Optional[int] = None
        # Set once the socket is bound and listening
        self.listening = asyncio.Event()
        self._started = False
        self._outcome: Optional[asyncio.Future[str]] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task[None]] = None
        self._torn_down = False

    async def run(self) -> str:
        """Wait for the redirect and return the authorization code.

        Raises CertificateLoadError or CallbackBindError before anything is
        served, AuthorizationTimeoutError when the window elapses and
        CallbackTransportError when the listener dies while waiting.
        """
        if self._started:
            raise RuntimeError("OIDCCallbackServer.run() can only be called once")
        self._started = True

        keyfile, certfile = self._load_certificates()
        sock = self._bind()
        try:
            return await self._wait_for_redirect(sock, keyfile, certfile)
        finally:
            await self._teardown()
            sock.close()
            logger.info("OIDC callback listener closed")

    def _load_certificates(self) -> Tuple[Path, Path]:
        cert_dir = self.config.resolved_certificate_path()
        keyfile = cert_dir / KEY_FILENAME
        certfile = cert_dir / CERT_FILENAME
        try:
            context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
            context.load_cert_chain(certfile=str(certfile), keyfile=str(keyfile))
        except OSError as exc:
            raise CertificateLoadError(f"Cannot load TLS key/certificate from {cert_dir}: {exc}") from exc
        return keyfile, certfile

    def _bind(self) -> socket.socket:
        addr = self.config.oidc_callback_server_addr
        port = self.config.oidc_callback_server_port
        try:
            family, socktype, proto, _, sockaddr = socket.getaddrinfo(
                addr, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
            )[0]
        except OSError as exc:
            raise CallbackBindError(f"Cannot resolve {addr}:{port}: {exc}") from exc

        sock = socket.socket(family, socktype, proto)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            sock.listen(LISTEN_BACKLOG)
        except OSError as exc:
            sock.close()
            raise CallbackBindError(f"Cannot listen on {addr}:{port}: {exc}") from exc

        self.port = sock.getsockname()[1]
        self.listening.set()
        logger.info("OIDC callback listener on %s:%s", addr, self.port)
        return sock

    async def _wait_for_redirect(self, sock: socket.socket, keyfile: Path, certfile: Path) -> str:
        loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()

        app = create_callback_app(self.config, self.oidc_state, self.auth_url, self._settle_success)
        self._server = uvicorn.Server(
            uvicorn.Config(
                app,
                ssl_keyfile=str(keyfile),
                ssl_certfile=str(certfile),
                lifespan="off",
                log_config=None,
                access_log=False,
                timeout_graceful_shutdown=1,
            )
        )
        self._timer = loop.call_later(
            self.config.oidc_authorization_timeout,
            self._settle_failure,
            AuthorizationTimeoutError(),
        )
        self._serve_task = loop.create_task(self._server.serve(sockets=[sock]))
        self._serve_task.add_done_callback(self._on_serve_done)

        return await self._outcome

    def _settle_success(self, code: str) -> None:
        if self._outcome is None or self._outcome.done():
            return
        logger.info("OIDC authorization completed")
        self._outcome.set_result(code)

    def _settle_failure(self, exc: BaseException) -> None:
        if self._outcome is None or self._outcome.done():
            return
        logger.warning("OIDC authorization failed: %s", exc)
        self._outcome.set_exception(exc)

    def _on_serve_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            self._settle_failure(CallbackTransportError("Callback listener was cancelled"))
            return
        cause = task.exception()
        if cause is None:
            self._settle_failure(CallbackTransportError("Callback listener stopped before authorization completed"))
            return
        error = CallbackTransportError(f"Callback listener failed: {cause}")
        error.__cause__ = cause
        self._settle_failure(error)

    async def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True

        if self._timer is not None:
            self._timer.cancel()
        if self._serve_task is None or self._server is None:
            return

        self._serve_task.remove_done_callback(self._on_serve_done)
        # force_exit makes uvicorn drop open connections instead of draining them
        self._server.should_exit = True
        self._server.force_exit = True
        await asyncio.gather(self._serve_task, return_exceptions=True)

        # uvicorn skips its own shutdown when asked to exit during startup
        for listener in getattr(self._server, "servers", []):
            listener.close()


async def start_oidc_callback_server(config: OnectaClientConfig, oidc_state: str, auth_url: str) -> str:
    """Run one callback listener and return the captured authorization code."""
    return await OIDCCallbackServer(config, oidc_state, auth_url).run()


def wait_for_authorization_code(config: OnectaClientConfig, oidc_state: str, auth_url: str) -> str:
    """Blocking variant of :func:`start_oidc_callback_server`."""
    return asyncio.run(start_oidc_callback_server(config, oidc_state, auth_url))
