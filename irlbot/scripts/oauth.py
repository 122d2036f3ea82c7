#!/usr/bin/env python3
"""One-time OAuth authorization: serve the callback, exchange the code, save tokens.

Usage: python -m irlbot.scripts.oauth
"""

import asyncio
import logging
import sys
from urllib.parse import quote, urlparse

from aiohttp import web

from ..core import (
    BOT_SCOPES,
    AuthError,
    ConfigError,
    CredentialStore,
    TokenLifecycleManager,
    load_settings,
    setup_logging,
)
from ..core.tokens import OAUTH_BASE

LOGGER = logging.getLogger("Bot.OAuth")


def gen_url(cid: str, uri: str, scopes: list[str]) -> str:
    s = "+".join(s.replace(":", "%3A") for s in scopes)
    return (
        f"{OAUTH_BASE}/authorize?client_id={cid}&redirect_uri={quote(uri, safe='')}"
        f"&response_type=code&scope={s}"
    )


def create_app(
    tokens: TokenLifecycleManager, authorize_url: str, redirect_uri: str, done: asyncio.Event
) -> web.Application:
    callback_path = urlparse(redirect_uri).path or "/callback"

    async def handle_root(request: web.Request) -> web.Response:
        return web.Response(
            text=(
                "<h1>IRL bot - OAuth setup</h1>"
                f'<p><a href="{authorize_url}">Authorize the bot on Twitch</a></p>'
            ),
            content_type="text/html",
        )

    async def handle_callback(request: web.Request) -> web.Response:
        code = request.query.get("code")
        if not code:
            error = request.query.get("error_description") or "Authorization code not received"
            return web.Response(text=f"<h1>Error</h1><p>{error}</p>", content_type="text/html", status=400)

        try:
            await tokens.exchange_code(code, redirect_uri)
        except AuthError as e:
            LOGGER.error(f"Failed to obtain tokens: {e}")
            return web.Response(text=f"<h1>Error</h1><p>{e}</p>", content_type="text/html", status=502)

        LOGGER.info(f"Tokens saved to {tokens.store.path}")
        done.set()
        return web.Response(
            text="<h1>Authorized!</h1><p>Tokens saved. You can close this window and start the bot.</p>",
            content_type="text/html",
        )

    app = web.Application()
    app.router.add_get("/", handle_root)
    app.router.add_get(callback_path, handle_callback)
    return app


async def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        LOGGER.error(str(e))
        return 1

    store = CredentialStore(settings.tokens_file)
    tokens = TokenLifecycleManager(store, settings.client_id, settings.client_secret)
    authorize_url = gen_url(settings.client_id, settings.redirect_uri, BOT_SCOPES)

    parsed = urlparse(settings.redirect_uri)
    host = parsed.hostname or "localhost"
    port = parsed.port or 3000

    done = asyncio.Event()
    runner = web.AppRunner(create_app(tokens, authorize_url, settings.redirect_uri, done))
    await runner.setup()
    try:
        await web.TCPSite(runner, host, port).start()
        LOGGER.info(f"Authorization server started, open http://{host}:{port}")
        LOGGER.info(f"Or authorize directly: {authorize_url}")
        LOGGER.info("Waiting for authorization...")

        await done.wait()
        # let the browser receive the success page
        await asyncio.sleep(2)
        return 0
    finally:
        await runner.cleanup()
        await tokens.close()


def run() -> None:
    setup_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(1)


if __name__ == "__main__":
    run()
