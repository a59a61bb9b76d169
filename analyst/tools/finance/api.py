"""
Async client for the Financial Datasets API (https://financialdatasets.ai).
"""

from typing import Any, Optional

import httpx

from analyst.errors import ToolExecutionError
from analyst.utils.logger import get_logger

log = get_logger(__name__)

FINANCIAL_DATASETS_BASE_URL = "https://api.financialdatasets.ai"


class FinancialDatasetsClient:
    """Thin wrapper over the REST API; one request per call."""

    def __init__(
        self,
        api_key: str,
        base_url: str = FINANCIAL_DATASETS_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET ``path`` and return the decoded JSON body.

        404 means "no data" and returns an empty dict; every other failure
        raises ToolExecutionError.
        """
        query = {k: v for k, v in params.items() if v is not None}
        url = f"{self.base_url}{path}"
        log.debug(f"GET {url} params={query}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.get(
                    url, params=query, headers={"X-API-KEY": self.api_key}
                )
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Request to {path} failed: {e}") from e

        if resp.status_code == 404:
            return {}
        if resp.status_code == 429:
            raise ToolExecutionError("rate limited")
        if resp.status_code >= 400:
            raise ToolExecutionError(
                f"API error {resp.status_code} for {path}: {resp.text[:200]}"
            )

        try:
            return resp.json()
        except ValueError as e:
            raise ToolExecutionError(f"Malformed JSON from {path}") from e
