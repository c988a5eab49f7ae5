from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx


class UpstreamResponseError(RuntimeError):
    """Raised when an external service answers with an unexpected shape."""


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self, **kwargs: Any) -> httpx.AsyncClient:
        """Build a short-lived client for a single call."""
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport, **kwargs)

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass
