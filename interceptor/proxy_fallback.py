"""
ProxyFallback - transparent forwarding for URLs no rule intercepts.

In explicit-proxy mode the inbound path carries the original URL, one path
segment per "/"-delimited piece. Path normalisation tends to collapse the
"//" after the scheme, so "https:/host/file" is repaired to "https://host/file".
"""

import re
from typing import Sequence, Union
from urllib.parse import urlsplit

from interceptor.errors import BadTargetUrl, ProxyError
from interceptor.file_server import ContentServer, Delivery

_SCHEME_SLASHES = re.compile(r"^(https?):/+", re.IGNORECASE)


def reconstruct_target_url(segments: Union[str, Sequence[str]], query: str = "") -> str:
    if isinstance(segments, str):
        segments = segments.split("/")

    joined = "/".join(segments).lstrip("/")
    url = _SCHEME_SLASHES.sub(lambda m: m.group(1) + "://", joined, count=1)
    if query:
        url = f"{url}?{query}"

    try:
        parts = urlsplit(url)
    except ValueError as e:
        raise BadTargetUrl(f"Invalid target URL: {joined}") from e
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise BadTargetUrl(f"Invalid target URL: {joined}")
    return url


class ProxyFallback:

    def __init__(self, content_server: ContentServer):
        self.content_server = content_server

    def proxy(self, target_url: str) -> Delivery:
        return self.content_server.fetch(target_url, error_cls=ProxyError, label="Proxy request")
