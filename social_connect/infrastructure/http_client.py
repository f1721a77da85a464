# social_connect/infrastructure/http_client.py
from typing import Any, Dict, Optional, Tuple

import httpx


def _json_object(r: httpx.Response) -> Dict[str, Any]:
    body = r.json()
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object from {r.request.url.host}, got {type(body).__name__}")
    return body


class ExternalAPIClient:
    """
    Thin JSON client for third-party REST APIs. Raises httpx.HTTPStatusError on
    non-2xx responses and ValueError on bodies that are not a JSON object.
    """

    def __init__(self, timeout: float = 30, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def post(
        self,
        url: str,
        headers: Optional[dict] = None,
        json: Any = None,
        data: Optional[dict] = None,
        auth: Optional[Tuple[str, str]] = None,
    ) -> Dict[str, Any]:
        async with self._client() as client:
            r = await client.post(url, headers=headers, json=json, data=data, auth=auth)
            r.raise_for_status()
            return _json_object(r)

    async def get(self, url: str, headers: Optional[dict] = None, params: Optional[dict] = None) -> Dict[str, Any]:
        async with self._client() as client:
            r = await client.get(url, headers=headers, params=params)
            r.raise_for_status()
            return _json_object(r)
