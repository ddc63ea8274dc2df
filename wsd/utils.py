from __future__ import annotations

from urllib.parse import quote, urlparse

_TLS_SCHEMES = ("wss", "https")

# Reserved and already-escaped characters are left alone.
_RESOURCE_SAFE = "/:@!$&'()*+,;=~%?"


def parse_url(url: str):
    parsed = urlparse(url)
    if parsed.scheme not in ("ws", "wss", "http", "https"):
        raise ValueError("Only ws and wss schemes are supported")
    host = parsed.hostname or ""
    if not host:
        raise ValueError(f"No host in URL: {url!r}")
    port = parsed.port or (443 if parsed.scheme in _TLS_SCHEMES else 80)
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return parsed, host, port, quote(path, safe=_RESOURCE_SAFE)


def is_tls(url: str) -> bool:
    return urlparse(url).scheme in _TLS_SCHEMES
