from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple
from urllib.parse import parse_qs, urljoin, urlsplit

from fastapi import FastAPI, Request, Response
from fastapi.responses import HTMLResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import OnectaClientConfig

logger = logging.getLogger(__name__)

CALLBACK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def resolve_request_target(request: Request, base_url: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Resolve the raw request target against ``base_url``.

    Returns the resolved path and the first ``state`` and ``code`` query values.
    """
    raw_path = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    target = raw_path.decode("latin-1").split("?", 1)[0] or "/"
    query_string = request.scope.get("query_string", b"").decode("latin-1")
    if query_string:
        target = f"{target}?{query_string}"

    parsed = urlsplit(urljoin(base_url, target))
    params = parse_qs(parsed.query, keep_blank_values=True)
    state = params.get("state", [None])[0]
    code = params.get("code", [None])[0]
    return parsed.path or "/", state, code


def create_callback_app(
    config: OnectaClientConfig,
    oidc_state: str,
    auth_url: str,
    on_auth_code: Callable[[str], None],
) -> FastAPI:
    """Build the single-route app answering the identity provider redirect.

    ``on_auth_code`` is called with the code once the thank-you page has been
    sent in full. Requests that do not complete the flow never call it.
    """
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    thank_you_html = config.thank_you_html()

    @app.exception_handler(StarletteHTTPException)
    async def reject_unrouted(request: Request, exc: StarletteHTTPException) -> Response:
        # Methods outside CALLBACK_METHODS end up here as 405
        logger.debug("Rejected %s %s (%s)", request.method, request.url.path, exc.status_code)
        return Response(status_code=400)

    @app.api_route("/{path:path}", methods=CALLBACK_METHODS)
    async def oidc_callback(request: Request) -> Response:
        path, state, code = resolve_request_target(request, config.oidc_callback_server_baseurl)
        logger.debug("Callback request %s %s", request.method, path)

        if state == oidc_state and code:
            async def _complete() -> None:
                on_auth_code(code)

            logger.info("Received authorization code for the expected state")
            return HTMLResponse(content=thank_you_html, status_code=200, background=BackgroundTask(_complete))

        if path == "/" and state is None and code is None:
            # Initial browser hit, bounce to the identity provider
            return Response(status_code=302, headers={"Location": auth_url})

        if state is not None:
            logger.warning("Rejected redirect with mismatched state or missing code")
        return Response(status_code=400)

    return app
