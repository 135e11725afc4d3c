"""
Model Interceptor - FastAPI backend

Management API under /api/ plus a catch-all interception route that serves
matched downloads from local files or alternate remote sources.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from interceptor.engine import InterceptEngine
from interceptor.errors import ConfigValidationError
from interceptor.file_server import ContentServer
from interceptor.history import AuditLog
from interceptor.rule_store import RuleStore, parse_config
from interceptor.settings import Settings
from interceptor.suggest import analyze_log

logger = structlog.get_logger(__name__)

INTERCEPT_METHODS = ["GET", "POST", "PUT", "HEAD"]


# ------------ Pydantic Models ------------

class AnalyzeLogRequest(BaseModel):
    log_content: str = Field(alias="logContent")


def create_app(settings: Optional[Settings] = None, rule_store=None, audit_log=None,
               content_server: Optional[ContentServer] = None) -> FastAPI:
    """Build the app; stores and the content server can be injected for tests"""
    settings = settings or Settings()
    rule_store = rule_store or RuleStore(settings.config_path)
    audit_log = audit_log or AuditLog(settings.log_path)
    content_server = content_server or ContentServer(
        settings.root_dir,
        timeout=settings.upstream_timeout,
        verify_ssl=settings.verify_ssl,
        chunk_size=settings.chunk_size,
    )
    engine = InterceptEngine(rule_store, audit_log, content_server, mode=settings.mode)

    app = FastAPI(title="Model Interceptor", version="1.0")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True,
                       allow_methods=["*"], allow_headers=["*"])
    app.state.settings = settings
    app.state.engine = engine

    # ------------ Configuration ------------

    @app.get("/api/config")
    async def get_config():
        config = await run_in_threadpool(rule_store.load)
        return JSONResponse(config.to_document())

    @app.post("/api/config")
    async def save_config(document: Dict[str, Any]):
        try:
            config = parse_config(document)
            await run_in_threadpool(rule_store.save, config)
        except ConfigValidationError as e:
            logger.info("config_rejected", errors=e.errors)
            return JSONResponse({"message": e.message, "errors": e.errors}, status_code=400)
        return JSONResponse({"message": "Configuration saved successfully"})

    # ------------ Journal ------------

    @app.get("/api/logs")
    async def get_logs():
        entries = await run_in_threadpool(audit_log.list)
        return JSONResponse([e.model_dump(mode="json", by_alias=True) for e in entries])

    # ------------ Rule suggestion ------------

    @app.post("/api/analyze-log")
    def analyze_log_content(req: AnalyzeLogRequest):
        return JSONResponse({"suggestedRule": analyze_log(req.log_content)})

    # ------------ Interception (must stay last) ------------

    @app.api_route("/{path:path}", methods=INTERCEPT_METHODS)
    async def intercept(request: Request, path: str):
        return await engine.handle(request)

    return app
