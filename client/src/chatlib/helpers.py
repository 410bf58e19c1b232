import re
from urllib.parse import urlencode

_API_SUFFIX = re.compile(r"/api/?$")


def rstrip_slash(s: str) -> str:
    return s[:-1] if s.endswith("/") else s


def http_url(http_base: str, path: str) -> str:
    """Join the gateway base address and an API path (`/auth/check`)."""
    if not path.startswith("/"):
        path = "/" + path
    return f"{rstrip_slash(http_base)}{path}"


def socket_base_url(api_base: str) -> str:
    """Socket.IO lives on the same host as the API, without the `/api` segment."""
    return _API_SUFFIX.sub("", api_base) or "/"


def with_query(url: str, **params: str) -> str:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"
