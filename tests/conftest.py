"""Shared fixtures: raw explorer API records and asset metadata."""
import base64

import pytest

from ledgerlens.ingestion.config import ExplorerConfig
from ledgerlens.schema import AssetMetadata

ASSET_A = "asset_a"
AVAX = "avax_asset"
NFT_FAMILY = "nft_family"
X_CHAIN = "x_chain"
P_CHAIN = "p_chain"


def b64(text):
    return base64.b64encode(text.encode()).decode()


@pytest.fixture()
def assets():
    return {
        ASSET_A: AssetMetadata(asset_id=ASSET_A, symbol="AAA", denomination=6),
        AVAX: AssetMetadata(asset_id=AVAX, symbol="AVAX", denomination=9),
        NFT_FAMILY: AssetMetadata(asset_id=NFT_FAMILY, symbol="NFT", denomination=0, is_nft=True),
    }


@pytest.fixture()
def config():
    return ExplorerConfig(
        api_url="https://explorer.test",
        transactions_endpoint="/v2/transactions",
        assets_endpoint="/v2/assets",
        blocks_endpoint="/v2/blocks",
        fee_asset_id=AVAX,
        retry_base_seconds=0.01,
        retry_max_seconds=0.05,
        max_retries=2,
    )


@pytest.fixture()
def make_output():
    """Factory for raw output dicts; keyword arguments override defaults."""
    counter = iter(range(1000))

    def _make(**overrides):
        data = {
            "id": f"utxo_{next(counter)}",
            "transactionID": "tx_1",
            "redeemingTransactionID": "",
            "outputIndex": 0,
            "chainID": X_CHAIN,
            "assetID": ASSET_A,
            "timestamp": "2021-03-01T10:00:00.123Z",
            "amount": "0",
            "outputType": 7,
            "groupID": None,
            "stake": False,
            "stakeableout": False,
            "stakeLocktime": 0,
            "rewardUtxo": False,
            "genesisutxo": False,
            "frozen": False,
            "locktime": 0,
            "threshold": 1,
            "payload": None,
            "addresses": ["avax1owner"],
            "caddresses": [],
            "block": "",
            "nonce": 0,
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture()
def make_transaction():
    """Factory for raw transaction dicts; keyword arguments override defaults."""

    def _make(inputs=(), outputs=(), **overrides):
        data = {
            "id": "tx_1",
            "chainID": X_CHAIN,
            "type": "base",
            "inputs": [
                {
                    "credentials": [
                        {"signature": "sig", "public_key": "pk", "address": "avax1owner"}
                    ],
                    "output": output,
                }
                for output in inputs
            ],
            "outputs": list(outputs),
            "memo": b64("hello"),
            "inputTotals": {},
            "outputTotals": {},
            "reusedAddressTotals": None,
            "timestamp": "2021-03-01T10:00:00Z",
            "txFee": 0,
            "genesis": False,
            "rewarded": False,
            "rewardedTime": None,
            "epoch": 0,
            "vertexId": "vertex_1",
            "validatorNodeID": "",
            "validatorStart": 0,
            "validatorEnd": 0,
            "txBlockId": "",
        }
        data.update(overrides)
        return data

    return _make
