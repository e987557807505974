"""
HTTP surface for the runtime supervisor.

Endpoints::

    GET  /health            -> {mode, activeExecutionProfile, warnings[], ...}
    POST /chat              -> {ok, content?, errorCategory?, errorMessage?}
    GET  /hardware-profile  -> serialized HardwareProfile + ExecutionProfile
    GET  /models            -> installed models of the local server

Error responses never carry raw driver or OS text; that detail goes to the
diagnostics log only.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field

from .config import SupervisorConfig
from .errors import RuntimeSupervisorError
from .supervisor import ChatRequest, RuntimeSupervisor

logger = logging.getLogger(__name__)

_STATUS_BY_CATEGORY = {
    "not_ready": 503,
    "model_not_installed": 404,
    "call_timeout": 504,
    "resource_exhaustion": 507,
    "installation": 503,
    "process_start": 503,
}


# ---------------------------------------------------------------------------
# Request / response bodies
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatBody(BaseModel):
    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    options: Optional[dict[str, Any]] = None


class ChatResponse(BaseModel):
    ok: bool
    content: Optional[str] = None
    errorCategory: Optional[str] = None
    errorMessage: Optional[str] = None


def create_app(
    supervisor: Optional[RuntimeSupervisor] = None,
    *,
    config: Optional[SupervisorConfig] = None,
    manage_lifecycle: bool = True,
) -> Any:
    """Create the FastAPI app.

    Parameters
    ----------
    supervisor:
        Supervisor to expose.  Built from ``config`` when omitted.
    manage_lifecycle:
        When ``True`` the app's lifespan initializes and starts the
        supervisor on startup and shuts it down on exit.  A failed start
        leaves the app up so ``/health`` can report the failure.
    """
    from contextlib import asynccontextmanager

    from fastapi import FastAPI
    from fastapi.responses import JSONResponse

    sup = supervisor or RuntimeSupervisor(config)

    @asynccontextmanager
    async def lifespan(app: Any) -> Any:
        if manage_lifecycle:
            try:
                await sup.initialize()
                await sup.start()
            except RuntimeSupervisorError as exc:
                logger.error(
                    "Runtime did not start: %s",
                    exc.category,
                    extra={"context": {"technical": exc.technical}},
                )
        yield
        if manage_lifecycle:
            await sup.shutdown()

    app = FastAPI(title="inferguard", version="0.1.0", lifespan=lifespan)
    app.state.supervisor = sup

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return sup.health_status().to_dict()

    @app.get("/hardware-profile")
    async def hardware_profile() -> dict[str, Any]:
        return sup.hardware_report()

    @app.get("/models")
    async def models() -> Any:
        try:
            installed = await sup.list_models()
        except (httpx.HTTPError, OSError) as exc:
            logger.warning("Model listing failed: %s", exc)
            return JSONResponse(
                status_code=503,
                content={"models": [], "error": "The local AI engine is not running."},
            )
        return {
            "models": [
                {
                    "name": m.name,
                    "size": m.size_display,
                    "family": m.family,
                    "quantization": m.quantization,
                    "parameterSize": m.parameter_size,
                }
                for m in installed
            ]
        }

    @app.post("/chat", response_model=ChatResponse)
    async def chat(body: ChatBody) -> Any:
        request = ChatRequest(
            model=body.model,
            messages=[{"role": m.role, "content": m.content} for m in body.messages],
            options=body.options,
        )
        try:
            result = await sup.chat(request)
        except RuntimeSupervisorError as exc:
            return JSONResponse(
                status_code=_STATUS_BY_CATEGORY.get(exc.category, 500),
                content={
                    "ok": False,
                    "content": None,
                    "errorCategory": exc.category,
                    "errorMessage": exc.user_message,
                },
            )
        return ChatResponse(ok=True, content=result.content)

    return app


def run_server(config: SupervisorConfig, *, host: str = "127.0.0.1", port: int = 8765) -> None:
    """Start the HTTP surface (blocking)."""
    import uvicorn

    app = create_app(config=config)
    uvicorn.run(app, host=host, port=port, log_level="info")
