"""
Results API Client
==================

Thin async wrapper over the /results endpoints. Error responses are turned
back into the server's exception classes (LockedPeriodError,
ValidationError, ...) and network failures into TransientStoreError, so
callers handle one hierarchy whichever side of the wire failed.

Usage:
    async with ResultsClient() as client:
        period = await client.get_period(2025, 6)
        await client.upsert_row(2025, 6, "P1", {"fps": 3})
"""

from typing import Any, Dict, Optional

import httpx

from vb100.core.config import settings
from vb100.core.exceptions import TransientStoreError, error_from_response
from vb100.core.logging_config import logger


class ResultsClient:
    """Async HTTP client for the results API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.API_REQUEST_TIMEOUT,
        )

    async def __aenter__(self) -> "ResultsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"[ResultsClient] {method} {path} failed: {type(e).__name__}: {e}")
            raise TransientStoreError(f"Cannot reach results API: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            raise error_from_response(response.status_code, body)
        return body

    # ==================== Periods ====================

    async def get_period(self, year: int, month: int, product_id: Optional[str] = None) -> Dict[str, Any]:
        """{"meta": {...}, "rows": [...]}"""
        params = {"productId": product_id} if product_id else None
        return await self._request("GET", f"/results/{year}/{month}", params=params)

    async def upsert_row(self, year: int, month: int, product_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Send only the changed fields (camelCase keys) for one product"""
        payload = {**fields, "productId": product_id}
        return await self._request("PUT", f"/results/{year}/{month}/row", json=payload)

    async def patch_meta(self, year: int, month: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/results/{year}/{month}/meta", json=fields)

    async def take_snapshot(self, year: int, month: int) -> Dict[str, Any]:
        return await self._request("POST", f"/results/{year}/{month}/snapshot")

    # ==================== Grading ====================

    async def thresholds(self, clean_sample_size: float) -> Dict[str, Any]:
        return await self._request(
            "GET", "/results/grading/thresholds", params={"cleanSampleSize": clean_sample_size}
        )
