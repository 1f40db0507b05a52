"""HTTP client helpers shared by the source plugins."""

from __future__ import annotations

from typing import Dict, Optional

import httpx


def build_headers(
    user_agent: str,
    bearer_token: Optional[str] = None,
    accept: str = "application/json",
) -> Dict[str, str]:
    headers: Dict[str, str] = {"User-Agent": user_agent, "Accept": accept}
    if bearer_token:
        headers["Authorization"] = f"Bearer {bearer_token}"
    return headers


def create_client(
    base_url: str = "",
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Provide a configured async HTTP client.

    ``transport`` lets callers substitute ``httpx.MockTransport`` in tests.
    """

    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers or {},
        timeout=httpx.Timeout(timeout, connect=min(10.0, timeout)),
        follow_redirects=True,
        transport=transport,
    )


__all__ = ["build_headers", "create_client"]
