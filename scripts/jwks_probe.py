#!/usr/bin/env python3
"""
Watch a JWKS endpoint through the cache.

Runs the foreground refresher against an endpoint and polls the cached key
set every second, logging what a token validator would see. Useful to check
how an identity provider's cache headers interact with the cache bounds.
"""

import argparse
import asyncio
from datetime import timedelta
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.config import JWKSConfig  # noqa: E402
from shared.errors import JWKSException  # noqa: E402
from shared.logging import configure_logging, get_logger  # noqa: E402
from service_jwks.app.jwks import JWKSClient  # noqa: E402


DEFAULT_URL = "https://www.googleapis.com/oauth2/v3/certs"

logger = get_logger("jwks.probe")


def _seconds(value: str) -> timedelta:
    return timedelta(seconds=float(value))


async def probe(config: JWKSConfig, poll_interval: float) -> None:
    """Run the refresher until it exits, polling the key set meanwhile."""
    async with JWKSClient(config) as client:
        # expected to fail, the refresher is not running yet
        try:
            client.get_key_set()
        except JWKSException as exc:
            logger.error("get keys without refresher", error=str(exc))

        refresher = asyncio.create_task(client.run_foreground())
        try:
            while not refresher.done():
                await asyncio.wait({refresher}, timeout=poll_interval)
                try:
                    key_set = client.get_key_set()
                except JWKSException as exc:
                    logger.error("failed to get keys", error=str(exc))
                else:
                    logger.info("keys available", kids=key_set.kids)
        finally:
            refresher.cancel()
            await asyncio.gather(refresher, return_exceptions=True)

        refresher.result()


def _parse_args() -> argparse.Namespace:
    defaults = JWKSConfig(url=DEFAULT_URL)
    parser = argparse.ArgumentParser(description="Poll a JWKS endpoint through the cache.")
    parser.add_argument("--url", default=DEFAULT_URL, help="JWKS URL")
    parser.add_argument("--cache-min", type=_seconds, default=defaults.cache_min, help="Minimum cache duration, seconds")
    parser.add_argument("--cache-max", type=_seconds, default=defaults.cache_max, help="Maximum cache duration, seconds")
    parser.add_argument("--cache-errors", type=_seconds, default=defaults.cache_errors, help="Error cache duration, seconds")
    parser.add_argument("--keep-stale-keys", type=_seconds, default=defaults.keep_stale_keys, help="Stale keys grace window, seconds")
    parser.add_argument("--exit-on-error", action="store_true", help="Stop on the first failed refresh")
    parser.add_argument("--poll-interval", type=float, default=1.0, help="Seconds between key set reads")
    parser.add_argument("--log-level", default="debug", help="Log level")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    configure_logging("jwks-probe", args.log_level)

    config = JWKSConfig(
        url=args.url,
        cache_min=args.cache_min,
        cache_max=args.cache_max,
        cache_errors=args.cache_errors,
        keep_stale_keys=args.keep_stale_keys,
        exit_on_error=args.exit_on_error,
    )
    logger.debug("current config", config=config.model_dump(mode="json"))

    try:
        asyncio.run(probe(config, args.poll_interval))
    except KeyboardInterrupt:
        return 130
    except JWKSException as exc:
        logger.error("refresher exited", error=str(exc), code=exc.code)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
