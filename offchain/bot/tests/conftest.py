import asyncio

import pytest

from stela_bot.config import Settings
from stela_bot.submitter import SubmitResult
from stela_core.db import StelaStore
from stela_core.felt import pad_address
from stela_core.rpc import MockStarknetRPC

STELA = pad_address("0x5e")
BORROWER = pad_address("0xb0")
LENDER = pad_address("0x1e")


class FakeSubmitter:
    """Records executed calls; answers from a queue of results."""

    def __init__(self):
        self.calls = []
        self.results = []
        # when set, execute waits on it as if for confirmation
        self.gate = None

    async def execute(self, contract_address, entrypoint, calldata):
        self.calls.append((contract_address, entrypoint, list(calldata)))
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if self.results:
            return self.results.pop(0)
        return SubmitResult(success=True, tx_hash=hex(0x7000 + len(self.calls)))

    def entrypoints(self):
        return [entrypoint for _, entrypoint, _ in self.calls]


@pytest.fixture
def store(tmp_path):
    db = StelaStore(f"sqlite:///{tmp_path / 'bot.db'}")
    yield db
    db.close()


@pytest.fixture
def rpc():
    mock = MockStarknetRPC()
    mock.set_call_result(STELA, "nonces", [0])
    return mock


@pytest.fixture
def settings():
    return Settings(
        rpc_url="http://node.test",
        stela_address=STELA,
        bot_address="0xb07",
        bot_private_key="0x1",
        lock_ttl_seconds=300,
    )


@pytest.fixture
def submitter():
    return FakeSubmitter()


@pytest.fixture
def order_data():
    return {
        "borrower": BORROWER,
        "debt_assets": [{"asset_address": "0x10", "asset_type": "ERC20", "value": "1000", "token_id": "0"}],
        "interest_assets": [{"asset_address": "0x10", "asset_type": "ERC20", "value": "50", "token_id": "0"}],
        "collateral_assets": [
            {"asset_address": "0x20", "asset_type": "ERC721", "value": "1", "token_id": "7"}
        ],
        "debt_count": 1,
        "interest_count": 1,
        "collateral_count": 1,
        "duration": "86400",
        "deadline": "5000",
        "multi_lender": False,
        "order_hash": "0xabc",
    }
