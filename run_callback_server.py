#!/usr/bin/env python3
"""
Onecta OIDC callback listener
Waits for the identity provider to redirect back with an authorization code
and prints it. The state token and authorization URL come from the token
module that started the login.
"""

import argparse
import asyncio
import logging
import sys
import webbrowser
from pathlib import Path

from dotenv import load_dotenv

from src.onecta.config import get_settings
from src.onecta.errors import OIDCCallbackError
from src.onecta.oidc_callback_server import OIDCCallbackServer


async def _login(settings, state, auth_url, open_browser):
    server = OIDCCallbackServer(settings, state, auth_url)
    task = asyncio.create_task(server.run())
    listening = asyncio.create_task(server.listening.wait())
    await asyncio.wait({task, listening}, return_when=asyncio.FIRST_COMPLETED)
    listening.cancel()
    if open_browser and server.listening.is_set():
        webbrowser.open(settings.oidc_callback_server_baseurl)
    return await task


def main(argv=None):
    """
    Run one login attempt against the configured callback listener.

    The browser is pointed at the local base URL, which redirects to the
    identity provider. Exit status is 1 when no code could be captured.
    """
    parser = argparse.ArgumentParser(description="Capture an Onecta OIDC authorization code")
    parser.add_argument("--state", required=True, help="OIDC state embedded in the authorization URL")
    parser.add_argument("--auth-url", required=True, help="Identity provider authorization URL")
    parser.add_argument("--no-browser", action="store_true", help="Do not open a browser window")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
    )
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    settings = get_settings()

    print(f"Open {settings.oidc_callback_server_baseurl} to sign in")
    print(f"Waiting up to {settings.oidc_authorization_timeout:g}s for the authorization redirect...")
    try:
        code = asyncio.run(_login(settings, args.state, args.auth_url, not args.no_browser))
    except OIDCCallbackError as exc:
        print(f"Authorization failed: {exc}", file=sys.stderr)
        return 1

    print(code)
    return 0


if __name__ == "__main__":
    sys.exit(main())
