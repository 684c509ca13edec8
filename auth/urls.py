from __future__ import annotations

import urllib.parse


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))


def origin_of(url: str) -> str | None:
    parsed = urllib.parse.urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def request_origin(request, *, trust_proxy_headers: bool = False) -> str:
    """scheme://host of the inbound request.

    X-Forwarded-Proto and X-Forwarded-Host are read only with
    ``trust_proxy_headers``; a proxy in front must overwrite them.
    """
    scheme = request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    if trust_proxy_headers:
        scheme = request.headers.get("x-forwarded-proto") or scheme
        host = request.headers.get("x-forwarded-host") or host
    return f"{scheme.split(',')[0].strip()}://{host.split(',')[0].strip()}"
