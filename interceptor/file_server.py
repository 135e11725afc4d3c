"""
ContentServer - delivers a rule target as a byte stream.

Local targets are resolved inside a fixed root directory and streamed from
disk; remote targets are fetched once with requests and relayed chunk by
chunk. Neither mode ever holds a whole payload in memory.
"""

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Type
from urllib.parse import unquote, urlsplit

import requests
import structlog
import urllib3

from interceptor.errors import LocalNotFound, SandboxViolation, UpstreamError
from interceptor.storage import is_under

logger = structlog.get_logger(__name__)

USER_AGENT = "Local-Model-Interceptor/1.0"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
CHUNK_SIZE = 64 * 1024


@dataclass
class Delivery:
    """Headers plus a lazy body. close() must be called exactly once when done."""
    headers: Dict[str, str]
    body: Iterator[bytes]
    close: Callable[[], None] = field(default=lambda: None)


def attachment_header(filename: str) -> str:
    return 'attachment; filename="{}"'.format(filename.replace('"', ""))


def filename_from_url(url: str) -> Optional[str]:
    try:
        name = posixpath.basename(urlsplit(url).path)
    except ValueError:
        return None
    return name or None


def _read_file(handle, chunk_size: int) -> Iterator[bytes]:
    while True:
        chunk = handle.read(chunk_size)
        if not chunk:
            break
        yield chunk


def _relay(response: requests.Response, chunk_size: int, error_cls: Type[UpstreamError],
           label: str) -> Iterator[bytes]:
    try:
        for chunk in response.iter_content(chunk_size=chunk_size):
            if chunk:
                yield chunk
    except (requests.exceptions.RequestException, OSError) as e:
        raise error_cls(f"{label} interrupted mid-transfer: {e}") from e


class ContentServer:

    def __init__(self, root_dir: Path, session: Optional[requests.Session] = None,
                 timeout: float = 30.0, verify_ssl: bool = True, chunk_size: int = CHUNK_SIZE):
        self.root_dir = Path(root_dir).resolve()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.chunk_size = chunk_size

        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    # =========================================================================
    # LOCAL
    # =========================================================================
    def resolve_local_path(self, target: str) -> Path:
        """Resolve ``target`` inside root_dir.

        Raises SandboxViolation when it escapes, LocalNotFound when it is not a usable path.
        """
        try:
            candidate = Path(unquote(target))
            if not candidate.is_absolute():
                candidate = self.root_dir / candidate
            # NUL bytes raise ValueError, symlink loops OSError or RuntimeError
            resolved = candidate.resolve()
        except (ValueError, OSError, RuntimeError) as e:
            logger.warning("local_path_invalid", target=target, error=str(e))
            raise LocalNotFound("Invalid file path") from e

        if not is_under(resolved, self.root_dir):
            logger.warning("sandbox_violation", target=target)
            raise SandboxViolation("Access denied: target resolves outside the permitted directory")
        return resolved

    def serve_local(self, target: str) -> Delivery:
        path = self.resolve_local_path(target)

        try:
            exists, is_file = path.exists(), path.is_file()
        except OSError as e:
            logger.warning("local_read_failed", target=target, error=str(e))
            raise LocalNotFound("Cannot read file") from e
        if not exists:
            raise LocalNotFound("File not found")
        if not is_file:
            raise LocalNotFound("Path is not a file")

        try:
            size = path.stat().st_size
            handle = path.open("rb")
        except OSError as e:
            logger.warning("local_read_failed", target=target, error=str(e))
            raise LocalNotFound("Cannot read file") from e

        return Delivery(
            headers={
                "Content-Type": DEFAULT_CONTENT_TYPE,
                "Content-Length": str(size),
                "Content-Disposition": attachment_header(path.name),
            },
            body=_read_file(handle, self.chunk_size),
            close=handle.close,
        )

    # =========================================================================
    # REMOTE
    # =========================================================================
    def fetch(self, url: str, error_cls: Type[UpstreamError] = UpstreamError,
              label: str = "Upstream fetch") -> Delivery:
        """Single-attempt streaming GET. Failures raise ``error_cls``."""
        try:
            response = self.session.get(
                url,
                headers={"User-Agent": USER_AGENT, "Accept-Encoding": "identity"},
                stream=True,
                timeout=self.timeout,
                verify=self.verify_ssl,
            )
        except requests.exceptions.Timeout as e:
            raise error_cls(f"{label} failed: Request Timeout") from e
        except requests.exceptions.RequestException as e:
            raise error_cls(f"{label} failed: Connection Error: {e}") from e

        if not 200 <= response.status_code < 300:
            response.close()
            raise error_cls(
                f"{label} failed: {response.status_code} {response.reason}",
                upstream_status=response.status_code,
                reason=response.reason,
            )

        headers = {"Content-Type": response.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE}
        if response.headers.get("Content-Length"):
            headers["Content-Length"] = response.headers["Content-Length"]
        filename = filename_from_url(url)
        if filename:
            headers["Content-Disposition"] = attachment_header(filename)

        return Delivery(
            headers=headers,
            body=_relay(response, self.chunk_size, error_cls, label),
            close=response.close,
        )

    def serve_remote(self, target: str) -> Delivery:
        return self.fetch(target)
