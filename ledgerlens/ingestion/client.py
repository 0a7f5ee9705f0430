"""Async HTTP client for the explorer indexing API.

This is the transport collaborator of the normalization core: it fetches raw
JSON records and owns the retry policy. Nothing here interprets the records
beyond asset metadata parsing.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional
from urllib.parse import quote, urlencode

import aiohttp

from ledgerlens.exceptions import FetchFailed
from ledgerlens.ingestion.assets import parse_asset_metadata
from ledgerlens.ingestion.config import ExplorerConfig
from ledgerlens.schema import AssetMetadata

logger = logging.getLogger("ledgerlens.ingestion.client")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class ExplorerClient:
    """Fetch raw transactions, blocks and asset metadata from the explorer API.

    Use as an async context manager so the underlying ``aiohttp`` session is
    opened and closed around the requests.

    Timeouts and transport errors surface as ``FetchFailed`` once retries
    are exhausted. ``asyncio.CancelledError`` is never wrapped and
    propagates to the caller unchanged.
    """

    def __init__(self, config: Optional[ExplorerConfig] = None) -> None:
        self._config = config or ExplorerConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> ExplorerClient:
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_seconds)
        self._session = aiohttp.ClientSession(timeout=timeout)
        logger.info("ExplorerClient initialized | api=%s", self._config.api_url)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def config(self) -> ExplorerConfig:
        return self._config

    # -- URLs -----------------------------------------------------------------

    def _url(self, endpoint: str, record_id: Optional[str] = None,
             params: Optional[Mapping[str, Any]] = None) -> str:
        url = f"{self._config.api_url.rstrip('/')}{endpoint}"
        if record_id is not None:
            url = f"{url}/{quote(record_id, safe='')}"
        if params:
            url = f"{url}?{urlencode(params, doseq=True)}"
        return url

    # -- Requests -------------------------------------------------------------

    async def _fetch_json(self, url: str) -> Any:
        """GET ``url`` with exponential backoff on rate limits and server errors."""
        if self._session is None:
            raise RuntimeError("ExplorerClient must be used as an async context manager")

        attempt = 0
        while True:
            status = None
            last_error: Optional[BaseException] = None
            try:
                async with self._session.get(url) as response:
                    status = response.status
                    if status == 200:
                        return await response.json()
                    if status not in RETRYABLE_STATUSES:
                        raise FetchFailed(
                            f"Unexpected HTTP status {status}", url=url, status_code=status
                        )
                    logger.warning("HTTP %d from %s, retrying...", status, url)
            except (aiohttp.ContentTypeError, json.JSONDecodeError) as exc:
                raise FetchFailed(
                    f"Response is not JSON: {exc}", url=url, status_code=status
                ) from exc
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.warning("Network error fetching %s: %r", url, exc)
                last_error = exc

            attempt += 1
            if attempt > self._config.max_retries:
                raise FetchFailed(
                    f"Max retries exceeded for {url}", url=url, status_code=status
                ) from last_error
            delay = min(
                self._config.retry_base_seconds * (2 ** (attempt - 1)),
                self._config.retry_max_seconds,
            )
            await asyncio.sleep(delay)

    async def fetch_transaction(self, tx_id: str) -> dict[str, Any]:
        """Fetch one raw transaction by id."""
        return await self._fetch_json(self._url(self._config.transactions_endpoint, tx_id))

    async def fetch_transactions(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Fetch one raw page of transactions matching ``params``."""
        return await self._fetch_json(
            self._url(self._config.transactions_endpoint, params=params)
        )

    async def fetch_block(self, block_id: str) -> dict[str, Any]:
        """Fetch one raw block by id."""
        return await self._fetch_json(self._url(self._config.blocks_endpoint, block_id))

    async def fetch_blocks(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Fetch one raw page of blocks matching ``params``."""
        return await self._fetch_json(self._url(self._config.blocks_endpoint, params=params))

    async def fetch_asset_metadata(self, asset_id: str) -> AssetMetadata:
        """Fetch and parse the metadata of one asset."""
        data = await self._fetch_json(self._url(self._config.assets_endpoint, asset_id))
        return parse_asset_metadata(data)
