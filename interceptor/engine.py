"""
InterceptEngine - per-request routing and delivery.

    snapshot rules -> match -> serve local / serve remote / proxy / reject -> journal

Blocking work (file and requests I/O, journal writes) runs in the threadpool.
A transfer is journaled as success only after its last chunk has been sent;
a disconnect or a mid-stream upstream failure is journaled as error.
"""

from functools import partial
from typing import AsyncIterator, Callable, Optional

import anyio
import structlog
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse

from interceptor.errors import InterceptorError, NoRuleMatch
from interceptor.file_server import ContentServer, Delivery
from interceptor.matcher import RuleMatcher
from interceptor.models import RemoteTarget, parse_target
from interceptor.proxy_fallback import ProxyFallback, reconstruct_target_url

logger = structlog.get_logger(__name__)

NO_MATCH_DETAIL = "N/A - No matching rule"
MODES = ("intercept", "proxy")

_END = object()


def error_response(exc: InterceptorError, label: Optional[str] = None) -> Response:
    body = exc.message if label is None else f"{exc.message}: {label}"
    return PlainTextResponse(body, status_code=exc.status_code)


class InterceptEngine:

    def __init__(self, rule_store, audit_log, content_server: ContentServer,
                 proxy_fallback: Optional[ProxyFallback] = None,
                 matcher: Optional[RuleMatcher] = None, mode: str = "intercept"):
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode!r}")
        self.rule_store = rule_store
        self.audit_log = audit_log
        self.content_server = content_server
        self.proxy_fallback = proxy_fallback or ProxyFallback(content_server)
        self.matcher = matcher or RuleMatcher()
        self.mode = mode

    async def handle(self, request: Request) -> Response:
        method = request.method

        if self.mode == "proxy":
            path = request.path_params.get("path", request.url.path)
            try:
                request_url = reconstruct_target_url(path.split("/"), request.url.query)
            except InterceptorError as exc:
                await self._record(path, exc.message, "error", method)
                logger.warning("bad_target_url", path=path)
                return error_response(exc)
        else:
            request_url = str(request.url)

        config = await run_in_threadpool(self.rule_store.load)
        rule = self.matcher.match(request_url, config.rules)

        if rule is None:
            if self.mode == "proxy":
                opener = partial(self.proxy_fallback.proxy, request_url)
                return await self._deliver(request_url, method, opener, request_url)
            await self._record(request_url, NO_MATCH_DETAIL, "error", method)
            logger.info("no_matching_rule", url=request_url)
            return error_response(NoRuleMatch())

        try:
            target = parse_target(rule.target)
        except InterceptorError as exc:
            await self._record(request_url, f"Rule {rule.id} ({exc.message})", "error", method)
            logger.warning("rule_missing_target", url=request_url, rule_id=rule.id)
            return error_response(exc)

        if isinstance(target, RemoteTarget):
            opener = partial(self.content_server.serve_remote, target.url)
            label = target.url
        else:
            opener = partial(self.content_server.serve_local, target.path)
            label = target.path

        logger.debug("rule_matched", url=request_url, rule_id=rule.id, target=label)
        return await self._deliver(request_url, method, opener, label)

    # =========================================================================
    # DELIVERY
    # =========================================================================
    async def _deliver(self, request_url: str, method: str,
                       opener: Callable[[], Delivery], label: str) -> Response:
        try:
            delivery = await run_in_threadpool(opener)
        except InterceptorError as exc:
            await self._record(request_url, f"{label} ({exc.message})", "error", method)
            logger.warning("delivery_failed", url=request_url, target=label,
                           status=exc.status_code, error=exc.message)
            return error_response(exc, label)

        if method == "HEAD":
            delivery.close()
            await self._record(request_url, label, "success", method)
            return Response(status_code=200, headers=delivery.headers)

        transfer = Transfer(delivery, self.audit_log, request_url, method, label)
        return TransferResponse(transfer, status_code=200, headers=delivery.headers)

    async def _record(self, request_url: str, served_file: str, status: str,
                      method: Optional[str]) -> None:
        await run_in_threadpool(self.audit_log.record, request_url, served_file, status, method)


class Transfer:
    """One streamed delivery: relays its chunks, then releases and journals exactly once."""

    def __init__(self, delivery: Delivery, audit_log, request_url: str,
                 method: Optional[str], label: str):
        self.delivery = delivery
        self.audit_log = audit_log
        self.request_url = request_url
        self.method = method
        self.label = label
        self.status = "error"
        self.detail = f"{label} (Transfer aborted)"
        self.finished = False

    async def chunks(self) -> AsyncIterator[bytes]:
        body = iter(self.delivery.body)
        try:
            while True:
                chunk = await run_in_threadpool(next, body, _END)
                if chunk is _END:
                    break
                yield chunk
            self.status, self.detail = "success", self.label
        except InterceptorError as exc:
            self.detail = f"{self.label} ({exc.message})"
            logger.warning("stream_failed", url=self.request_url, target=self.label,
                           error=exc.message)
            raise
        finally:
            await self.finish()

    async def finish(self) -> None:
        if self.finished:
            return
        self.finished = True
        self.delivery.close()
        # the journal write must survive the cancellation that ends a disconnected stream
        with anyio.CancelScope(shield=True):
            await run_in_threadpool(self.audit_log.record, self.request_url, self.detail,
                                    self.status, self.method)
        logger.info("request_served", url=self.request_url, target=self.label,
                    status=self.status)


class TransferResponse(StreamingResponse):
    """StreamingResponse that finishes its transfer even when the body is never pulled"""

    def __init__(self, transfer: Transfer, **kwargs):
        super().__init__(transfer.chunks(), **kwargs)
        self.transfer = transfer

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.transfer.finish()
