# utils/http_client.py

from typing import Any, AsyncGenerator, Dict, Optional

import httpx
from stellar_sdk.client.base_async_client import BaseAsyncClient
from stellar_sdk.client.response import Response


class HttpxAsyncClient(BaseAsyncClient):
    """Runs the stellar_sdk RPC requests over a shared httpx.AsyncClient."""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={'Content-Type': 'application/json'},
        )

    @staticmethod
    def _to_response(response: httpx.Response) -> Response:
        return Response(
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
            url=str(response.url),
        )

    async def get(self, url: str, params: Optional[Dict[str, str]] = None) -> Response:
        response = await self._client.get(url, params=params)
        return self._to_response(response)

    async def post(self, url: str, data: Optional[Dict[str, str]] = None,
                   json_data: Optional[Dict[str, Any]] = None) -> Response:
        response = await self._client.post(url, data=data, json=json_data)
        return self._to_response(response)

    def stream(self, url: str, params: Optional[Dict[str, str]] = None) -> AsyncGenerator[Dict[str, Any], None]:
        """Soroban RPC is request/response only; raises at call time instead of on first iteration."""
        raise NotImplementedError("Soroban RPC does not use server-sent event streams.")

    async def close(self) -> None:
        await self._client.aclose()
