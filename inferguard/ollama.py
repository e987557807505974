"""HTTP client for the local model server (Ollama API)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .errors import RequestFailedError, classify_error_text

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:11435"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class OllamaModel:
    """A model installed in the local server."""

    name: str
    size: int  # bytes
    family: str
    quantization: str  # e.g. "Q4_K_M"
    parameter_size: str  # e.g. "2B", "7B"
    modified_at: str
    digest: str

    @property
    def size_display(self) -> str:
        gb = self.size / (1024**3)
        if gb >= 1.0:
            return f"{gb:.1f} GB"
        mb = self.size / (1024**2)
        return f"{mb:.0f} MB"

    def matches(self, name: str) -> bool:
        """Match a full tag (``gemma:2b``) or a bare name against ``:latest``."""
        if self.name == name:
            return True
        if ":" not in name:
            return self.name == f"{name}:latest"
        return False


def _parse_model(entry: dict[str, Any]) -> OllamaModel:
    details = entry.get("details") or {}
    return OllamaModel(
        name=entry.get("name", ""),
        size=entry.get("size", 0),
        family=details.get("family", "unknown"),
        quantization=details.get("quantization_level", "unknown"),
        parameter_size=details.get("parameter_size", "unknown"),
        modified_at=entry.get("modified_at", ""),
        digest=entry.get("digest", ""),
    )


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return resp.text


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class OllamaClient:
    """Talks to one server instance.

    Sync calls are used by the CLI and the catalog; ``chat`` and
    ``ping`` are async so the supervisor can race them against its
    watchdog.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL) -> None:
        self.base_url = base_url.rstrip("/")

    def is_running(self, timeout: float = 3.0) -> bool:
        try:
            resp = httpx.get(f"{self.base_url}/api/tags", timeout=timeout)
            return resp.status_code == 200
        except (httpx.HTTPError, OSError):
            return False

    def list_models(self, timeout: float = 5.0) -> list[OllamaModel]:
        """Installed models.  Raises ``httpx.HTTPError`` if the server is down."""
        resp = httpx.get(f"{self.base_url}/api/tags", timeout=timeout)
        resp.raise_for_status()
        return [_parse_model(e) for e in resp.json().get("models", [])]

    async def ping(self, timeout: float = 2.0) -> bool:
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
            return resp.status_code == 200
        except (httpx.HTTPError, OSError):
            return False

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        """Non-streaming chat completion; returns the assistant content.

        No client-side timeout is set: the supervisor's watchdog bounds the
        call and cancels it.
        """
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
        }
        if options:
            payload["options"] = options

        async with httpx.AsyncClient(timeout=None) as client:
            resp = await client.post(f"{self.base_url}/api/chat", json=payload)

        if resp.status_code >= 400:
            text = _error_text(resp)
            logger.warning(
                "Server returned HTTP %d for chat",
                resp.status_code,
                extra={"context": {"model": model, "error": text}},
            )
            raise classify_error_text(text, resp.status_code)

        data = resp.json()
        if data.get("error"):
            raise classify_error_text(str(data["error"]))
        message = data.get("message") or {}
        content = message.get("content")
        if content is None:
            raise RequestFailedError(f"unexpected chat response: {data!r}"[:500])
        return content
