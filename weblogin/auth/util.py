from __future__ import annotations

from urllib.parse import urlencode


def _has_control_chars(value: str) -> bool:
    return any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value)


def is_local_url(url: str | None) -> bool:
    """
    Prevent open-redirects: True only for same-origin relative URLs like `/inbox`
    or application-relative `~/inbox`.

    Scheme-relative (`//evil.com`) and backslash variants (`/\\evil.com`) are
    rejected because browsers treat them as absolute.
    """
    if not url:
        return False
    if url[0] == "/":
        if len(url) == 1:
            return True
        if url[1] in ("/", "\\"):
            return False
        return not _has_control_chars(url[1:])
    if url[0] == "~" and len(url) > 1 and url[1] == "/":
        if len(url) == 2:
            return True
        if url[2] in ("/", "\\"):
            return False
        return not _has_control_chars(url[2:])
    return False


def resolve_app_relative(url: str) -> str:
    """Turn `~/path` into `/path`; other values pass through."""
    if url.startswith("~/"):
        return url[1:]
    return url


def append_query(url: str, params: dict) -> str:
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{urlencode(params)}"
