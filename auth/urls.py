from __future__ import annotations

import urllib.parse


def safe_redirect_path(raw: str | None) -> str:
    """Reduce a user-supplied post-login target to a same-origin path."""
    if not raw:
        return "/"
    if not raw.startswith("/") or raw.startswith("//") or "\\" in raw:
        return "/"

    parsed = urllib.parse.urlparse(raw)
    if parsed.scheme or parsed.netloc:
        return "/"
    return raw


def frontend_redirect_url(frontend_url: str, path: str) -> str:
    return f"{frontend_url.rstrip('/')}{safe_redirect_path(path)}"


def append_query_params(url: str, params: dict[str, str]) -> str:
    parsed = urllib.parse.urlparse(url)
    existing = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
    for key, value in params.items():
        existing[key] = [value]

    new_query = urllib.parse.urlencode(existing, doseq=True)
    return urllib.parse.urlunparse(parsed._replace(query=new_query))
