from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from auth.cors import CorsPolicy
from auth.models import Grant
from auth.session_auth import SessionAuthenticator

from .constants import APP_VERSION, AUTH_MODE, LOGGER, SERVICE_NAME
from .dispatch import Dispatcher
from .errors import InvalidArguments, Unauthorized, UnknownOperation

if TYPE_CHECKING:
    from fastmcp import FastMCP

DISPATCH_PATH = "/dispatch"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
UNAUTHORIZED = -32001

_INVALID_PARAMS_KINDS = {UnknownOperation.kind, InvalidArguments.kind}


def rpc_result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def rpc_error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


async def handle_rpc(dispatcher: Dispatcher, body: Any, grant: Grant | None) -> tuple[int, dict]:
    """Run one JSON-RPC shaped dispatch request; returns (http status, response body)."""
    if not isinstance(body, dict):
        return 400, rpc_error(None, INVALID_REQUEST, "Request body must be a JSON object.")

    request_id = body.get("id")
    method = body.get("method")
    params = body.get("params") or {}

    if method == "tools/list":
        return 200, rpc_result(request_id, {"tools": dispatcher.list_tools()})

    if method != "tools/call":
        return 400, rpc_error(request_id, METHOD_NOT_FOUND, "Method not found")

    if not isinstance(params, dict) or not isinstance(params.get("name"), str):
        return 400, rpc_error(request_id, INVALID_PARAMS, "tools/call requires params.name.")

    arguments = params.get("arguments") or {}
    if not isinstance(arguments, dict):
        return 400, rpc_error(request_id, INVALID_PARAMS, "params.arguments must be an object.")

    result = await dispatcher.dispatch(params["name"], arguments, grant)
    if result.ok:
        return 200, rpc_result(request_id, result.to_tool_content())

    code = INVALID_PARAMS if result.error_kind in _INVALID_PARAMS_KINDS else INTERNAL_ERROR
    return 200, rpc_error(request_id, code, result.error or "Tool call failed.")


def mount_dispatch_route(
    mcp: "FastMCP",
    dispatcher: Dispatcher,
    authenticator: SessionAuthenticator,
    *,
    cors_origins: set[str] | None = None,
) -> None:
    cors = CorsPolicy(cors_origins)

    async def dispatch_route(request: Request) -> Response:
        try:
            grant = await authenticator.authenticate(request)
        except Unauthorized as error:
            LOGGER.info("Rejected dispatch request: %s", error.message)
            return cors.json(request, rpc_error(None, UNAUTHORIZED, error.message), status_code=401)

        try:
            body = await request.json()
        except ValueError:
            return cors.json(request, rpc_error(None, PARSE_ERROR, "Parse error"), status_code=400)

        status_code, payload = await handle_rpc(dispatcher, body, grant)
        return cors.json(request, payload, status_code=status_code)

    mcp.custom_route(DISPATCH_PATH, methods=["POST"])(dispatch_route)
    cors.mount_preflight(mcp, DISPATCH_PATH)


def mount_health_route(mcp: "FastMCP") -> None:
    @mcp.custom_route("/health", methods=["GET"])
    async def health_route(request: Request) -> Response:
        del request
        return JSONResponse(
            {
                "status": "healthy",
                "service": SERVICE_NAME,
                "version": APP_VERSION,
                "auth_mode": AUTH_MODE,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
