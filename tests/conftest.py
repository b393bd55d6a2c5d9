import asyncio

import pytest

from blockwatch.models import MinerTarget, Result, WalletIdentity
from blockwatch.services.status import StatusAggregator

MINER_1 = MinerTarget(id="miner1", label="Miner 1", endpoint_url="http://miner1")
MINER_2 = MinerTarget(id="miner2", label="Miner 2", endpoint_url="http://miner2")
WALLET_URL = "http://wallet"


def identity(address: str) -> WalletIdentity:
    return WalletIdentity(blockchain_address=address, private_key=f"priv-{address}", public_key=f"pub-{address}")


async def wait_for(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.002)


class FakeGateway:
    """Stands in for GatewayClient; each operation is a coroutine function set by the test."""

    def __init__(self, chain=None, identity=None, balance=None, submit=None) -> None:
        self.chain = chain
        self.identity = identity
        self.balance = balance
        self.submit = submit
        self.calls: list[tuple] = []

    async def fetch_chain(self, base_url):
        self.calls.append(("chain", base_url))
        return await self.chain(base_url)

    async def fetch_wallet_identity(self, base_url, role):
        self.calls.append(("identity", base_url, role))
        return await self.identity(base_url, role)

    async def fetch_wallet_balance(self, base_url, address):
        self.calls.append(("balance", base_url, address))
        return await self.balance(base_url, address)

    async def submit_transaction(self, base_url, sender, recipient_address, value):
        self.calls.append(("submit", base_url, sender.blockchain_address, recipient_address, value))
        return await self.submit(base_url, sender, recipient_address, value)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


def returning(result: Result):
    async def operation(*args):
        return result

    return operation


@pytest.fixture
def status():
    return StatusAggregator()
