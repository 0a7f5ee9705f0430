import asyncio
import json

import aiohttp
import pytest
from unittest.mock import AsyncMock, patch

from ledgerlens.exceptions import FetchFailed
from ledgerlens.ingestion.client import ExplorerClient
from ledgerlens.schema import AssetMetadata


def _response(status=200, data=None):
    resp = AsyncMock()
    resp.status = status
    resp.json.return_value = data
    return resp


@pytest.mark.asyncio
async def test_fetch_transaction_success(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(data={"id": "tx_1"})

        async with client:
            raw = await client.fetch_transaction("tx_1")

    assert raw == {"id": "tx_1"}
    assert mock_get.call_args[0][0] == "https://explorer.test/v2/transactions/tx_1"


@pytest.mark.asyncio
async def test_fetch_transactions_encodes_params(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(data={"transactions": []})

        async with client:
            await client.fetch_transactions({"chainID": "p_chain", "assetID": ["a", "b"]})

    url = mock_get.call_args[0][0]
    assert url.startswith("https://explorer.test/v2/transactions?")
    assert "chainID=p_chain" in url
    assert "assetID=a&assetID=b" in url


@pytest.mark.asyncio
async def test_fetch_asset_metadata_is_parsed(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(
            data={"id": "asset_a", "symbol": "AAA", "denomination": 6}
        )

        async with client:
            meta = await client.fetch_asset_metadata("asset_a")

    assert meta == AssetMetadata(asset_id="asset_a", symbol="AAA", denomination=6)
    assert mock_get.call_args[0][0] == "https://explorer.test/v2/assets/asset_a"


@pytest.mark.asyncio
async def test_not_found_is_not_retried(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(status=404)

        async with client:
            with pytest.raises(FetchFailed) as excinfo:
                await client.fetch_block("missing")

    assert excinfo.value.status_code == 404
    assert mock_get.call_count == 1


@pytest.mark.asyncio
async def test_rate_limit_is_retried_with_backoff(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get, \
            patch("ledgerlens.ingestion.client.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        mock_get.return_value.__aenter__.side_effect = [
            _response(status=429),
            _response(status=503),
            _response(data={"id": "tx_1"}),
        ]

        async with client:
            raw = await client.fetch_transaction("tx_1")

    assert raw == {"id": "tx_1"}
    assert mock_get.call_count == 3
    assert [c.args[0] for c in mock_sleep.await_args_list] == [0.01, 0.02]


@pytest.mark.asyncio
async def test_max_retries_exceeded(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get, \
            patch("ledgerlens.ingestion.client.asyncio.sleep", new_callable=AsyncMock):
        mock_get.return_value.__aenter__.return_value = _response(status=500)

        async with client:
            with pytest.raises(FetchFailed, match="Max retries exceeded"):
                await client.fetch_transaction("tx_1")

    assert mock_get.call_count == config.max_retries + 1


@pytest.mark.asyncio
async def test_network_errors_become_fetch_failed(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get, \
            patch("ledgerlens.ingestion.client.asyncio.sleep", new_callable=AsyncMock):
        mock_get.side_effect = aiohttp.ClientConnectionError("refused")

        async with client:
            with pytest.raises(FetchFailed) as excinfo:
                await client.fetch_transaction("tx_1")

    assert isinstance(excinfo.value.__cause__, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
async def test_invalid_json_is_fetch_failed(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get:
        resp = _response()
        resp.json.side_effect = json.JSONDecodeError("Expecting value", "", 0)
        mock_get.return_value.__aenter__.return_value = resp

        async with client:
            with pytest.raises(FetchFailed, match="not JSON"):
                await client.fetch_transaction("tx_1")


@pytest.mark.asyncio
async def test_requires_open_session(config):
    client = ExplorerClient(config)
    with pytest.raises(RuntimeError):
        await client.fetch_transaction("tx_1")


def test_record_ids_are_quoted(config):
    client = ExplorerClient(config)
    assert client._url("/v2/blocks", "a/b") == "https://explorer.test/v2/blocks/a%2Fb"


@pytest.mark.asyncio
async def test_timeouts_become_fetch_failed(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get, \
            patch("ledgerlens.ingestion.client.asyncio.sleep", new_callable=AsyncMock):
        mock_get.side_effect = asyncio.TimeoutError()

        async with client:
            with pytest.raises(FetchFailed, match="Max retries exceeded") as excinfo:
                await client.fetch_transaction("tx_1")

    assert isinstance(excinfo.value.__cause__, asyncio.TimeoutError)
    assert mock_get.call_count == config.max_retries + 1


@pytest.mark.asyncio
async def test_fetch_blocks_encodes_params(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.return_value.__aenter__.return_value = _response(data={"blocks": []})

        async with client:
            page = await client.fetch_blocks({"parentID": "block_1"})

    assert page == {"blocks": []}
    assert mock_get.call_args[0][0] == "https://explorer.test/v2/blocks?parentID=block_1"


@pytest.mark.asyncio
async def test_cancellation_is_not_wrapped(config):
    client = ExplorerClient(config)

    with patch("aiohttp.ClientSession.get") as mock_get:
        mock_get.side_effect = asyncio.CancelledError()

        async with client:
            with pytest.raises(asyncio.CancelledError):
                await client.fetch_transaction("tx_1")

    assert mock_get.call_count == 1
