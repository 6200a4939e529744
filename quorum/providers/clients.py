"""
Client Cache

Keyed cache of SDK client instances, one per endpoint identity, so every
adapter that talks to the same base URL with the same credential reuses a
single HTTP connection pool. The cache is an ordinary object owned by the
provider factory and passed in explicitly.
"""

from __future__ import annotations

import hashlib
from typing import Any, Callable, Dict, NamedTuple, Optional


class EndpointKey(NamedTuple):
    """Identity of an endpoint: backend kind, base URL and credential fingerprint."""

    kind: str
    base_url: Optional[str]
    credential: str


def credential_fingerprint(api_key: Optional[str]) -> str:
    """Hash an API key so raw credentials never become dictionary keys."""
    if not api_key:
        return ""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]


class ClientCache:
    """
    Map from endpoint identity to SDK client.

    Example:
        >>> cache = ClientCache()
        >>> client = cache.get_or_create("openai", None, "sk-...", lambda: object())
        >>> client is cache.get_or_create("openai", None, "sk-...", lambda: object())
        True
    """

    def __init__(self) -> None:
        self._clients: Dict[EndpointKey, Any] = {}

    def get_or_create(
        self,
        kind: str,
        base_url: Optional[str],
        api_key: Optional[str],
        factory: Callable[[], Any],
    ) -> Any:
        key = EndpointKey(kind, (base_url or "").rstrip("/") or None, credential_fingerprint(api_key))
        client = self._clients.get(key)
        if client is None:
            client = factory()
            self._clients[key] = client
        return client

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, key: object) -> bool:
        return key in self._clients

    def clear(self) -> None:
        self._clients.clear()


__all__ = ["ClientCache", "EndpointKey", "credential_fingerprint"]
