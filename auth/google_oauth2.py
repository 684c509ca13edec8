from __future__ import annotations

import json
import time
import urllib.parse
from dataclasses import dataclass

import httpx

from auth.models import Grant
from gdmcp.errors import MissingCredentials

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/userinfo.profile",
    "openid",
]


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str | None
    expires_in: int
    expires_at: float
    scope: str
    token_type: str = "Bearer"

    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    def to_grant(self) -> Grant:
        return Grant(
            access_token=self.access_token,
            refresh_token=self.refresh_token or "",
            expires_at=self.expires_at,
            scope=self.scope,
            token_type=self.token_type,
        )

    @classmethod
    def from_payload(cls, payload: dict, *, require_refresh_token: bool = True) -> "TokenResponse":
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")
        scope = payload.get("scope", "")
        token_type = payload.get("token_type", "Bearer")

        if not isinstance(access_token, str) or not access_token:
            raise RuntimeError("Token response missing access_token.")
        if require_refresh_token and (not isinstance(refresh_token, str) or not refresh_token):
            raise RuntimeError(
                "Token response missing refresh_token; offline access was not granted."
            )
        if not isinstance(expires_in, int):
            raise RuntimeError("Token response missing expires_in.")
        if not isinstance(scope, str):
            raise RuntimeError("Token response scope must be a string.")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
            expires_in=expires_in,
            expires_at=time.time() + expires_in,
            scope=scope,
            token_type=token_type if isinstance(token_type, str) else "Bearer",
        )


def build_authorization_url(client_id: str, redirect_uri: str, scopes: list[str]) -> str:
    # offline + consent makes Google issue a refresh token on every login
    query = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{GOOGLE_AUTHORIZE_URL}?{urllib.parse.urlencode(query)}"


async def _token_request(
    payload: dict[str, str],
    *,
    require_refresh_token: bool,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.post(GOOGLE_TOKEN_URL, data=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as error:
        detail = error.response.text
        raise RuntimeError(
            f"Token request failed with status {error.response.status_code}: {detail}"
        ) from error
    finally:
        if own_client:
            await http_client.aclose()

    return TokenResponse.from_payload(
        response.json(), require_refresh_token=require_refresh_token
    )


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        },
        require_refresh_token=True,
        client=client,
    )


async def refresh_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    # Google usually omits refresh_token on refresh; the caller keeps the old one.
    return await _token_request(
        {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        },
        require_refresh_token=False,
        client=client,
    )


def grant_from_token_json(raw: str) -> Grant:
    """Parse a saved token blob (the ``GOOGLE_OAUTH_TOKENS`` format) into a Grant.

    The blob is the token dict written by the setup flow: ``access_token``,
    ``refresh_token`` and ``expiry_date`` in epoch milliseconds. ``expires_at``
    in epoch seconds is accepted as well.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise MissingCredentials("Invalid GOOGLE_OAUTH_TOKENS format") from error

    if not isinstance(payload, dict):
        raise MissingCredentials("Invalid GOOGLE_OAUTH_TOKENS format")

    access_token = payload.get("access_token") or ""
    refresh = payload.get("refresh_token") or ""
    if not access_token and not refresh:
        raise MissingCredentials("GOOGLE_OAUTH_TOKENS contains no access or refresh token.")

    if isinstance(payload.get("expiry_date"), (int, float)):
        expires_at = payload["expiry_date"] / 1000
    elif isinstance(payload.get("expires_at"), (int, float)):
        expires_at = float(payload["expires_at"])
    else:
        # unknown expiry: force a refresh before first use
        expires_at = 0.0

    return Grant(
        access_token=access_token,
        refresh_token=refresh,
        expires_at=expires_at,
        scope=payload.get("scope", "") or "",
        token_type=payload.get("token_type", "Bearer") or "Bearer",
    )
