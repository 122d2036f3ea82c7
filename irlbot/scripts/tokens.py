#!/usr/bin/env python3
"""Show the stored token, its remaining lifetime and whether Twitch accepts it"""

import asyncio
import sys
import time

from ..core import ConfigError, CredentialStore, TokenLifecycleManager, load_settings


def format_remaining(seconds: float | None) -> str:
    if seconds is None:
        return "unknown (treated as expired)"
    if seconds <= 0:
        return "expired"
    hours, remainder = divmod(int(seconds), 3600)
    minutes, _ = divmod(remainder, 60)
    return f"{hours}h {minutes}m"


async def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"ERROR: {e}")
        return 1

    store = CredentialStore(settings.tokens_file)
    tokens = TokenLifecycleManager(store, settings.client_id, settings.client_secret)

    try:
        current = tokens.load()
        if current is None:
            print(f"No tokens in {store.path}. Run: python -m irlbot.scripts.oauth")
            return 1

        remaining = current.seconds_left(time.time())
        print(f"=== Token ({store.path}) ===\n")
        print(f"  Expires in:     {format_remaining(remaining)}")
        print(f"  Expiring soon:  {tokens.is_expiring_soon(settings.token_lookahead)}")
        print(f"  Has refresh:    {bool(current.refresh_token)}")

        valid = await tokens.validate_remote(current.access_token)
        print(f"  Remote check:   {'OK' if valid else 'REJECTED'}")
        return 0 if valid else 2
    finally:
        await tokens.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
