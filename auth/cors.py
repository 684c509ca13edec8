from __future__ import annotations

from typing import Any, Iterable

from starlette.requests import Request
from starlette.responses import JSONResponse, Response


class CorsPolicy:
    """Origin allow-list for browser callers of the auth and dispatch routes.

    A ``"*"`` entry echoes any origin back. Requests without an ``Origin``
    header get no CORS headers at all.
    """

    allow_methods = "GET, POST, OPTIONS"
    allow_headers = "Authorization, Content-Type, X-Session-Id"
    max_age = "600"

    def __init__(self, origins: Iterable[str] | None = None) -> None:
        self.origins = frozenset(origins or ())

    def allows(self, origin: str | None) -> bool:
        if not origin:
            return False
        return "*" in self.origins or origin in self.origins

    def decorate(self, request: Request, response: Response) -> Response:
        origin = request.headers.get("origin")
        if self.allows(origin):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Methods"] = self.allow_methods
            response.headers["Access-Control-Allow-Headers"] = self.allow_headers
            response.headers["Vary"] = "Origin"
        return response

    def json(self, request: Request, payload: Any, status_code: int = 200) -> Response:
        return self.decorate(request, JSONResponse(payload, status_code=status_code))

    def error(self, request: Request, code: str, description: str, status_code: int) -> Response:
        return self.json(
            request,
            {"error": code, "error_description": description},
            status_code=status_code,
        )

    def preflight(self, request: Request) -> Response:
        response = self.decorate(request, Response(status_code=204))
        if "Access-Control-Allow-Origin" in response.headers:
            response.headers["Access-Control-Max-Age"] = self.max_age
        return response

    def mount_preflight(self, mcp, path: str) -> None:
        @mcp.custom_route(path, methods=["OPTIONS"])
        async def preflight_route(request: Request) -> Response:
            return self.preflight(request)
