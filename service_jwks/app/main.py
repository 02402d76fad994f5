"""
JWKS cache service.

Serves the cached key set to local consumers and keeps it fresh in the
background.
"""

import asyncio
from typing import Any, Dict, Optional

from shared.base_service import BaseService
from shared.errors import JWKSException
from .jwks import BackgroundRefresh, JWKSClient, KeySet
from .jwks.state import NEVER


class JWKSService(BaseService):
    """JWKS cache service implementation."""

    def __init__(self, client: Optional[JWKSClient] = None):
        super().__init__("jwks", 8020)
        self.client = client or JWKSClient(self.config.jwks)
        self._refresh_task: Optional[asyncio.Task] = None

        self._setup_jwks_routes()

    def _setup_jwks_routes(self):
        """Set up JWKS-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "jwks",
                "message": "JWKS Cache Service",
                "version": "1.0.0"
            }

        @self.app.get("/.well-known/jwks.json")
        async def jwks_document():
            """Serve the cached key set."""
            return self.client.get_key_set().to_dict()

        @self.app.get("/jwks/status")
        async def jwks_status():
            """Diagnostics of the cache, no stale policy applied."""
            key_set, headers, raw_body, error = self.client.get_all()
            state = self.client.state

            return {
                "url": self.client.config.url,
                "kids": key_set.kids if key_set is not None else [],
                "headers": dict(headers) if headers is not None else {},
                "body_size": len(raw_body) if raw_body is not None else 0,
                "error": self._describe_error(error),
                "expires_after": state.expires_after.isoformat() if state.expires_after != NEVER else None,
                "stale_since": state.stale_since.isoformat() if state.stale_since else None,
                "fetched_at": state.fetched_at.isoformat() if state.fetched_at else None,
            }

    @staticmethod
    def _describe_error(error: Optional[Exception]) -> Optional[Dict[str, Any]]:
        if error is None:
            return None
        if isinstance(error, JWKSException):
            return error.to_response().model_dump()
        return {"code": "UNKNOWN", "message": str(error), "details": {}}

    def _on_keys_changed(self, key_set: Optional[KeySet], error: Optional[Exception]) -> None:
        if error is not None:
            self.logger.warning("JWKS unavailable after refresh", error=str(error))
            return
        self.logger.info("JWKS served", kids=key_set.kids)

    async def on_startup(self) -> None:
        """Load the key set, then keep it fresh in the background."""
        await self.client.warmup()
        self._refresh_task = self.client.run_background(
            BackgroundRefresh(
                interval=self.client.config.refresh_interval,
                on_change=self._on_keys_changed,
            )
        )

    async def on_shutdown(self) -> None:
        """Stop the refresh task and release the transport."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        await self.client.aclose()

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report whether the served key set is fresh or stale."""
        state = self.client.state
        self.client.get_key_set()
        return {"jwks": "stale" if state.error is not None else "ok"}


def create_app(client: Optional[JWKSClient] = None):
    """Create FastAPI application."""
    service = JWKSService(client)
    return service.app


if __name__ == "__main__":
    service = JWKSService()
    service.run()
