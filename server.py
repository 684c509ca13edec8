from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from auth import google_oauth2
from auth.gateway import OAuthGateway
from auth.models import Grant
from auth.session_auth import SessionAuthenticator
from auth.session_store import MemorySessionStore, SessionStore
from auth.urls import origin_of
from gdmcp.catalog import build_registry
from gdmcp.constants import LOGGER
from gdmcp.dispatch import ClientFactory, Dispatcher
from gdmcp.drive_client import DriveClient
from gdmcp.env import (
    _get_env_float,
    _get_env_int,
    is_truthy,
    load_env,
    load_scopes,
    parse_csv_env,
    setup_logging,
    validate_env,
)
from gdmcp.mcp_app import mount_dispatch_route, mount_health_route
from gdmcp.stdio import create_stdio_server, run_stdio_server

if TYPE_CHECKING:
    from fastmcp import FastMCP


def build_client_factory(
    *,
    client_id: str,
    client_secret: str,
    refresh_token_fn=google_oauth2.refresh_token,
    transport: httpx.AsyncBaseTransport | None = None,
    debug: bool = False,
    export_root: Path | None = None,
) -> ClientFactory:
    timeout = _get_env_float("GOOGLE_API_TIMEOUT", 30.0)
    max_retries = _get_env_int("GOOGLE_API_MAX_RETRIES", 2)

    def factory(grant: Grant) -> DriveClient:
        return DriveClient(
            grant,
            client_id=client_id,
            client_secret=client_secret,
            refresh_token_fn=refresh_token_fn,
            transport=transport,
            timeout=timeout,
            max_retries=max_retries,
            debug=debug,
            export_root=export_root,
        )

    return factory


def load_export_root() -> Path:
    raw = os.getenv("GDMCP_EXPORT_DIR", "").strip()
    return Path(raw).expanduser() if raw else Path.cwd() / "exports"


def load_cors_origins() -> set[str]:
    origins = parse_csv_env("CORS_ORIGINS")
    frontend_origin = origin_of(os.getenv("FRONTEND_URL", "").strip())
    if frontend_origin:
        origins.add(frontend_origin)
    return origins


def create_mcp(
    *,
    session_store: SessionStore | None = None,
    exchange_code_fn=google_oauth2.exchange_code,
    refresh_token_fn=google_oauth2.refresh_token,
    transport: httpx.AsyncBaseTransport | None = None,
) -> "FastMCP":
    from fastmcp import FastMCP

    load_env()
    debug_enabled = setup_logging()
    validate_env()

    client_id = os.getenv("GOOGLE_CLIENT_ID", "").strip()
    client_secret = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
    cors_origins = load_cors_origins()
    store = session_store if session_store is not None else MemorySessionStore()

    gateway = OAuthGateway(
        client_id=client_id,
        client_secret=client_secret,
        session_store=store,
        scopes=load_scopes(),
        redirect_uri=os.getenv("GOOGLE_REDIRECT_URI", "").strip() or None,
        frontend_url=os.getenv("FRONTEND_URL", "").strip() or None,
        cors_origins=cors_origins,
        exchange_code_fn=exchange_code_fn,
        trust_proxy_headers=is_truthy(os.getenv("TRUST_PROXY_HEADERS")),
    )
    dispatcher = Dispatcher(
        build_registry(),
        build_client_factory(
            client_id=client_id,
            client_secret=client_secret,
            refresh_token_fn=refresh_token_fn,
            transport=transport,
            debug=debug_enabled,
            export_root=load_export_root(),
        ),
    )
    authenticator = SessionAuthenticator(store)

    mcp = FastMCP(name="Google Drive MCP")
    gateway.mount_routes(mcp)
    mount_dispatch_route(mcp, dispatcher, authenticator, cors_origins=cors_origins)
    mount_health_route(mcp)
    setattr(mcp, "_session_store", store)
    setattr(mcp, "_dispatcher", dispatcher)
    LOGGER.info("Loaded %d tools", len(dispatcher.registry))
    return mcp


def load_stdio_grant() -> Grant | None:
    raw = os.getenv("GOOGLE_OAUTH_TOKENS", "").strip()
    if not raw:
        LOGGER.warning("GOOGLE_OAUTH_TOKENS is not set; tool calls will fail until it is.")
        return None
    return google_oauth2.grant_from_token_json(raw)


async def run_stdio() -> None:
    load_env()
    debug_enabled = setup_logging()

    client_id = os.getenv("GOOGLE_CLIENT_ID", "").strip()
    client_secret = os.getenv("GOOGLE_CLIENT_SECRET", "").strip()
    if not client_id or not client_secret:
        LOGGER.warning(
            "GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET are not set; expired tokens cannot be refreshed."
        )

    dispatcher = Dispatcher(
        build_registry(),
        build_client_factory(
            client_id=client_id,
            client_secret=client_secret,
            debug=debug_enabled,
        ),
    )
    server = create_stdio_server(dispatcher, load_stdio_grant())
    await run_stdio_server(server)


def main() -> None:
    if os.getenv("MCP_TRANSPORT", "http").strip().lower() == "stdio":
        asyncio.run(run_stdio())
        return

    host = os.getenv("MCP_HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8080"))
    mcp = create_mcp()
    LOGGER.info("Dispatch endpoint: http://%s:%s/dispatch", host, port)
    try:
        mcp.run(transport="streamable-http", host=host, port=port)
    finally:
        asyncio.run(mcp._session_store.clear())


if __name__ == "__main__":
    main()
