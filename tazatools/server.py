"""HTTP surface (FastAPI) wrapping ToolInvocationService + ChatAssistant.

Environment variables:
  TAZATOOLS_CONFIG=path/to/config.yaml
  TAZAPAY_API_KEY / TAZAPAY_API_SECRET   (passed to the worker environment)

CLI will import this module and call create_app().
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from .assistant import ChatAssistant
from .core.config_loader import ServiceConfig, load_config, sandbox_launch_spec
from .core.errors import (
    ConfigError,
    LaunchError,
    NotConnectedError,
    ToolError,
    ToolNotFoundError,
    describe_error,
)
from .core.logging import get_logger
from .core.service import ToolInvocationService
from .docs_client import DocsClient

logger = get_logger("tazatools.server")

ERROR_STATUS = {ToolNotFoundError: 404, NotConnectedError: 503, LaunchError: 503, ConfigError: 400}


def status_for(exc: ToolError) -> int:
    for kind, code in ERROR_STATUS.items():
        if isinstance(exc, kind):
            return code
    return 500


class InvokeRequest(BaseModel):
    tool: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    timeout_ms: Optional[float] = Field(default=None, gt=0)


class QueryRequest(BaseModel):
    text: str
    timeout_ms: Optional[float] = Field(default=None, gt=0)


class ChatRequest(BaseModel):
    message: str
    agent_mode: bool = True
    docs_fallback: bool = False


def create_app(
    config: Optional[ServiceConfig] = None,
    service: Optional[ToolInvocationService] = None,
    docs: Optional[DocsClient] = None,
    sandbox: bool = False,
    start_worker: bool = True,
):
    config = config or load_config()
    if service is None:
        spec = sandbox_launch_spec(config) if sandbox else None
        service = ToolInvocationService(config, launch_spec=spec)
    if docs is None:
        docs = DocsClient(config.docs_base_url, timeout_s=config.docs_timeout_s)
    assistant = ChatAssistant(service, docs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_worker:
            try:
                service.start()
            except LaunchError as e:
                # keep serving; /health reports the failure and /chat retries on demand
                logger.error(f"worker start failed: {e}")
        yield
        service.stop()
        docs.close()

    app = FastAPI(title="tazatools", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    def health():
        st = service.status()
        return {"status": "ok" if service.is_connected else "degraded", **st}

    @app.get("/tools")
    def list_tools():
        return {"tools": [t.to_payload() for t in service.list_tools()]}

    @app.get("/tools/relevant")
    def relevant_tools(q: str = Query(..., min_length=1)):
        return {"query": q, "tools": [t.name for t in service.find_relevant(q)]}

    @app.post("/invoke")
    def invoke(req: InvokeRequest):
        if len(service.registry) and service.registry.get(req.tool) is None:
            raise HTTPException(status_code=404, detail=f"Tool not found: {req.tool}")
        return service.invoke(req.tool, req.arguments, timeout_ms=req.timeout_ms).to_payload()

    @app.post("/query")
    def query(req: QueryRequest):
        outcome = service.run_query(req.text, timeout_ms=req.timeout_ms)
        if outcome is None:
            return {"tool": None, "candidates": [], "result": None}
        return outcome.to_payload()

    @app.post("/chat")
    def chat(req: ChatRequest):
        return {"markdown": assistant.respond(req.message, agent_mode=req.agent_mode, docs_fallback=req.docs_fallback)}

    @app.post("/admin/refresh")
    def admin_refresh():
        try:
            # reconnects a worker that failed to start or exited
            service.ensure_started()
        except ToolError as e:
            raise HTTPException(status_code=status_for(e), detail=describe_error(e))
        ok = service.refresh_tools()
        return {"refreshed": ok, "tools": service.registry.names(), "error": service.registry.last_refresh_error}

    @app.get("/metrics")
    def metrics(tool: Optional[str] = Query(None)):
        return service.get_metrics(tool)

    app.state.service = service
    app.state.assistant = assistant
    return app


__all__ = ["create_app", "status_for"]
