from __future__ import annotations

import time
from dataclasses import dataclass

REFRESH_SKEW_SECONDS = 60


@dataclass
class Grant:
    access_token: str
    refresh_token: str
    expires_at: float
    scope: str = ""
    token_type: str = "Bearer"

    def is_expiring(self, *, now: float | None = None, skew: int = REFRESH_SKEW_SECONDS) -> bool:
        current = time.time() if now is None else now
        return self.expires_at < current + skew

    def apply_refresh(self, access_token: str, expires_at: float, refresh_token: str | None = None) -> None:
        self.access_token = access_token
        self.expires_at = expires_at
        if refresh_token:
            self.refresh_token = refresh_token
