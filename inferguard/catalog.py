"""Model catalog: which models exist locally."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from .ollama import OllamaClient, OllamaModel

logger = logging.getLogger(__name__)


class ModelCatalog(Protocol):
    async def is_installed(self, model: str) -> bool: ...

    async def list_models(self) -> list[OllamaModel]: ...


class ServerModelCatalog:
    """Catalog backed by the running server's ``/api/tags`` listing."""

    def __init__(self, client: OllamaClient) -> None:
        self.client = client

    async def list_models(self) -> list[OllamaModel]:
        return await asyncio.to_thread(self.client.list_models)

    async def is_installed(self, model: str) -> bool:
        try:
            models = await self.list_models()
        except (httpx.HTTPError, OSError) as exc:
            # Let the chat call itself surface the real problem.
            logger.warning("Could not list installed models: %s", exc)
            return True
        return any(m.matches(model) for m in models)
