from __future__ import annotations


def _sanitize_header(name: str, value: str) -> tuple[str, str]:
    """
    Sanitize header name and value to prevent HTTP header injection (CRLF injection).
    Strips CR, LF, and null bytes from both name and value.
    """
    clean_name = name.replace("\r", "").replace("\n", "").replace("\x00", "")
    clean_value = value.replace("\r", "").replace("\n", "").replace("\x00", "")
    return clean_name, clean_value


def handshake_headers(
    origin: str,
    protocol: str = "",
    user_agent: str = "",
) -> list[tuple[str, str]]:
    """
    Build the extra headers sent with the upgrade request.

    Origin is always present; the subprotocol and User-Agent headers are
    only emitted when a non-empty value was given.
    """
    headers = [("Origin", origin)]
    if protocol:
        headers.append(("Sec-WebSocket-Protocol", protocol))
    if user_agent:
        headers.append(("User-Agent", user_agent))
    return [_sanitize_header(name, value) for name, value in headers]
