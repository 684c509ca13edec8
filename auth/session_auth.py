from __future__ import annotations

from auth.models import Grant
from auth.session_store import SessionStore
from gdmcp.errors import Unauthorized

SESSION_HEADER = "X-Session-Id"


def extract_bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header:
        return None
    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SessionAuthenticator:
    """Gates dispatch requests on a session id carried in a request header.

    The id is read from ``X-Session-Id`` (or an ``Authorization: Bearer``
    header), never from the request body. On success the Grant is attached to
    ``request.state.grant``.
    """

    def __init__(self, session_store: SessionStore, *, header_name: str = SESSION_HEADER) -> None:
        self.session_store = session_store
        self.header_name = header_name

    def extract_session_id(self, request) -> str | None:
        session_id = request.headers.get(self.header_name, "").strip()
        if session_id:
            return session_id
        return extract_bearer_token(request.headers.get("authorization"))

    async def authenticate(self, request) -> Grant:
        session_id = self.extract_session_id(request)
        if not session_id:
            raise Unauthorized(f"Missing {self.header_name} header.")

        grant = await self.session_store.get(session_id)
        if grant is None:
            raise Unauthorized("Unknown or expired session.")

        request.state.grant = grant
        return grant
