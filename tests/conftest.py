"""Shared pytest fixtures and test helpers for interceptor tests."""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pytest
import requests
from fastapi.testclient import TestClient
from requests.structures import CaseInsensitiveDict

from interceptor.backend import create_app
from interceptor.file_server import ContentServer
from interceptor.history import MemoryAuditLog
from interceptor.models import Config, Rule
from interceptor.rule_store import MemoryRuleStore
from interceptor.settings import Settings


class FakeResponse:
    """Stands in for a streamed ``requests.Response``."""

    def __init__(self, status_code: int = 200, chunks: Iterable[bytes] = (),
                 headers: Optional[Dict[str, str]] = None, reason: str = "OK",
                 fail_after: Optional[int] = None):
        self.status_code = status_code
        self.reason = reason
        self.headers = CaseInsensitiveDict(headers or {})
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for index, chunk in enumerate(self.chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise requests.exceptions.ChunkedEncodingError("connection reset")
            yield chunk

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Maps URLs to canned responses (or exceptions) and records calls."""

    def __init__(self):
        self.routes: Dict[str, Union[FakeResponse, Exception]] = {}
        self.calls: List[dict] = []

    def add(self, url: str, outcome: Union[FakeResponse, Exception]) -> None:
        self.routes[url] = outcome

    def get(self, url: str, **kwargs):
        self.calls.append({"url": url, **kwargs})
        outcome = self.routes.get(url)
        if outcome is None:
            raise requests.exceptions.ConnectionError(f"no route to {url}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_rule(prefix: str, target: str, **kwargs) -> Rule:
    return Rule(source_url_prefix=prefix, target=target, **kwargs)


@pytest.fixture
def root_dir(tmp_path: Path) -> Path:
    """Sandbox root holding one staged model file."""
    root = tmp_path / "models"
    root.mkdir()
    (root / "llama.gguf").write_bytes(b"GGUF" + bytes(range(256)) * 300)
    return root


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def content_server(root_dir: Path, session: FakeSession) -> ContentServer:
    return ContentServer(root_dir, session=session, chunk_size=1024)


@pytest.fixture
def rule_store() -> MemoryRuleStore:
    return MemoryRuleStore()


@pytest.fixture
def audit_log() -> MemoryAuditLog:
    return MemoryAuditLog()


@pytest.fixture
def make_client(tmp_path: Path, root_dir: Path, rule_store, audit_log, content_server):
    """Build a TestClient for the given rules and mode."""

    def _make(rules: Iterable[Rule] = (), mode: str = "intercept",
              base_url: str = "https://example.com", **client_kwargs) -> TestClient:
        rule_store.save(Config(rules=tuple(rules)))
        settings = Settings(data_dir=tmp_path, root_dir=root_dir, mode=mode)
        app = create_app(settings, rule_store=rule_store, audit_log=audit_log,
                         content_server=content_server)
        return TestClient(app, base_url=base_url, **client_kwargs)

    return _make
