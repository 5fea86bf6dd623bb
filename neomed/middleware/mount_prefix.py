"""
Strip deployment mount prefixes (``/.netlify/functions/api``, ``/api``) before routing.
"""

from typing import Iterable
from starlette.types import ASGIApp, Receive, Scope, Send


class MountPrefixMiddleware:
    """Pure ASGI middleware so the same routes answer under every mount point."""

    def __init__(self, app: ASGIApp, prefixes: Iterable[str]):
        self.app = app
        # Longest first, so "/api" never shadows "/api/..." style prefixes
        self.prefixes = sorted((p.rstrip("/") for p in prefixes if p.strip("/")), key=len, reverse=True)

    def strip(self, path: str) -> str:
        for prefix in self.prefixes:
            if path == prefix or path.startswith(prefix + "/"):
                return path[len(prefix):] or "/"
        return path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] in ("http", "websocket"):
            path = self.strip(scope["path"])
            if path != scope["path"]:
                scope = dict(scope)
                scope["path"] = path
                scope["raw_path"] = path.encode("utf-8")
        await self.app(scope, receive, send)
