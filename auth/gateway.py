from __future__ import annotations

import logging
import secrets

from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from auth import google_oauth2
from auth.cors import CorsPolicy
from auth.session_store import SessionStore
from auth.urls import append_query_params, request_origin
from gdmcp.errors import AuthExchangeError

LOGGER = logging.getLogger("gdmcp.auth")

CALLBACK_PATH = "/auth/callback"
SESSION_QUERY_PARAM = "session"


class OAuthGateway:
    """Turns a Google authorization code into a stored Grant and a session id."""

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        session_store: SessionStore,
        scopes: list[str] | None = None,
        redirect_uri: str | None = None,
        frontend_url: str | None = None,
        cors_origins: set[str] | None = None,
        exchange_code_fn=google_oauth2.exchange_code,
        trust_proxy_headers: bool = False,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.session_store = session_store
        self.scopes = scopes or list(google_oauth2.DEFAULT_SCOPES)
        self.redirect_uri = redirect_uri or None
        self.frontend_url = frontend_url or None
        self.cors = CorsPolicy(cors_origins)
        self._exchange_code_fn = exchange_code_fn
        self.trust_proxy_headers = trust_proxy_headers

    # -- gateway operations ----------------------------------------------------

    def redirect_target(self, origin: str) -> str:
        if self.redirect_uri:
            return self.redirect_uri
        return f"{origin.rstrip('/')}{CALLBACK_PATH}"

    def authorization_url(self, origin: str) -> str:
        return google_oauth2.build_authorization_url(
            client_id=self.client_id,
            redirect_uri=self.redirect_target(origin),
            scopes=self.scopes,
        )

    async def complete(self, code: str | None, origin: str) -> str:
        if not code:
            raise AuthExchangeError("Missing authorization code.", status_code=400)

        try:
            exchanged = await self._exchange_code_fn(
                client_id=self.client_id,
                client_secret=self.client_secret,
                code=code,
                redirect_uri=self.redirect_target(origin),
            )
        except Exception as error:
            LOGGER.warning("Authorization code exchange failed: %s", error)
            raise AuthExchangeError(
                f"Failed to exchange Google authorization code: {error}"
            ) from error

        session_id = secrets.token_urlsafe(32)
        await self.session_store.put(session_id, exchanged.to_grant())
        LOGGER.info("Created session %s...", session_id[:6])
        return session_id

    # -- routes ----------------------------------------------------------------

    def mount_routes(self, mcp) -> None:
        @mcp.custom_route("/auth/start", methods=["GET"])
        async def auth_start_route(request: Request) -> Response:
            return await self._handle_start(request)

        @mcp.custom_route(CALLBACK_PATH, methods=["GET"])
        async def auth_callback_route(request: Request) -> Response:
            return await self._handle_callback(request)

    def _origin(self, request: Request) -> str:
        return request_origin(request, trust_proxy_headers=self.trust_proxy_headers)

    async def _handle_start(self, request: Request) -> Response:
        url = self.authorization_url(self._origin(request))
        return RedirectResponse(url=url, status_code=302)

    async def _handle_callback(self, request: Request) -> Response:
        provider_error = request.query_params.get("error")
        if provider_error:
            return self.cors.error(
                request,
                "google_oauth_error",
                f"Google authorization returned an error: {provider_error}",
                400,
            )

        try:
            session_id = await self.complete(
                request.query_params.get("code"), self._origin(request)
            )
        except AuthExchangeError as error:
            code = "invalid_request" if error.status_code == 400 else "token_exchange_failed"
            return self.cors.error(request, code, error.message, error.status_code)

        if not self.frontend_url:
            return self.cors.json(request, {"session_id": session_id})

        redirect_url = append_query_params(self.frontend_url, {SESSION_QUERY_PARAM: session_id})
        return RedirectResponse(url=redirect_url, status_code=302)

