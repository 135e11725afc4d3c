"""
AuditLog - bounded, newest-first journal of request outcomes.

record() is best-effort: a failure to write the journal is logged and never
fails the request it describes.
"""

import threading
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import ValidationError

from interceptor.models import LogEntry
from interceptor.storage import read_json_safe, write_json_atomic

logger = structlog.get_logger(__name__)

LOG_FILE = "requests.log.json"
MAX_LOG_ENTRIES = 100

# shared by every AuditLog in the process, whichever instance writes
_JOURNAL_LOCK = threading.Lock()


def _prepend(entries: List[LogEntry], entry: LogEntry) -> List[LogEntry]:
    return [entry, *entries][:MAX_LOG_ENTRIES]


class AuditLog:
    """File-backed journal.

    The read-modify-write cycle is serialized by a process-wide lock, and the
    file itself is replaced atomically, so concurrent requests in one process
    never lose entries and the document is never left half-written.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def list(self) -> List[LogEntry]:
        payload, error = read_json_safe(self.path)
        if error:
            logger.warning("journal_unreadable", path=str(self.path), error=error)
            return []
        if payload is None:
            write_json_atomic(self.path, [])
            return []
        if not isinstance(payload, list):
            logger.warning("journal_unreadable", path=str(self.path), error="not a list")
            return []

        entries = []
        for item in payload:
            try:
                entries.append(LogEntry.model_validate(item))
            except ValidationError:
                logger.debug("journal_entry_skipped", item=item)
        return entries

    def record(self, request_url: str, served_file: str, status: str,
               method: Optional[str] = None) -> None:
        try:
            entry = LogEntry(
                request_url=request_url,
                served_file=served_file,
                status=status,
                method=method,
            )
            with _JOURNAL_LOCK:
                entries = _prepend(self.list(), entry)
                write_json_atomic(
                    self.path,
                    [e.model_dump(mode="json", by_alias=True) for e in entries],
                )
        except Exception as exc:
            logger.warning("journal_write_failed", url=request_url, error=str(exc))


class MemoryAuditLog:
    """In-process journal with the same contract, used by tests"""

    def __init__(self):
        self._entries: List[LogEntry] = []
        self._lock = threading.Lock()

    def list(self) -> List[LogEntry]:
        return list(self._entries)

    def record(self, request_url: str, served_file: str, status: str,
               method: Optional[str] = None) -> None:
        try:
            entry = LogEntry(
                request_url=request_url,
                served_file=served_file,
                status=status,
                method=method,
            )
        except ValidationError as exc:
            logger.warning("journal_write_failed", url=request_url, error=str(exc))
            return
        with self._lock:
            self._entries = _prepend(self._entries, entry)
