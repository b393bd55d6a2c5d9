import asyncio
from functools import partial
from typing import Any, Callable
from urllib.parse import urlencode

import requests
import structlog

from blockwatch.config import DEFAULT_TIMEOUT
from blockwatch.models import (
    Block,
    Blockchain,
    ErrorInfo,
    Result,
    Role,
    Transaction,
    WalletBalance,
    WalletIdentity,
)

logger = structlog.get_logger()

CHAIN_PATH = "/blocks"
USER_WALLET_PATH = "/wallet"
MINER_WALLET_PATH = "/miner/wallet"
BALANCE_PATH = "/wallet/amount"
TRANSACTION_PATH = "/transaction"


class GatewayError(Exception):
    kind = "gateway"


class NetworkError(GatewayError):
    """Transport failure: refused connection, DNS, timeout."""

    kind = "network"


class ProtocolError(GatewayError):
    """The endpoint answered with something that is not the expected JSON shape."""

    kind = "protocol"


class ApplicationError(GatewayError):
    """The endpoint answered but rejected the request."""

    kind = "application"


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise ProtocolError(f"missing field '{key}'")
    return data[key]


def _parse_hash(value: object) -> str:
    # Byte arrays arrive as lists of ints.
    if isinstance(value, list):
        try:
            return bytes(value).hex()
        except (TypeError, ValueError) as exc:
            raise ProtocolError("previous_hash is not a byte array") from exc
    if isinstance(value, str):
        return value
    raise ProtocolError("previous_hash has unexpected type")


def parse_transaction(raw: Any) -> Transaction:
    try:
        return Transaction(
            sender_address=str(_require(raw, "sender_blockchain_address")),
            recipient_address=str(_require(raw, "recipient_blockchain_address")),
            value=float(_require(raw, "value")),
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise ProtocolError("transaction value is not a number") from exc


def parse_block(raw: Any) -> Block:
    if not isinstance(raw, dict):
        raise ProtocolError("block is not an object")
    timestamp = raw.get("time_stamp", raw.get("timestamp"))
    if timestamp is None:
        raise ProtocolError("missing field 'time_stamp'")
    transactions = raw.get("transactions") or []
    if not isinstance(transactions, list):
        raise ProtocolError("transactions is not a list")
    try:
        return Block(
            timestamp=int(timestamp),
            nonce=int(_require(raw, "nonce")),
            previous_hash=_parse_hash(_require(raw, "previous_hash")),
            transactions=tuple(parse_transaction(tx) for tx in transactions),
        )
    except (TypeError, ValueError, OverflowError) as exc:
        raise ProtocolError("block has non-numeric timestamp or nonce") from exc


def parse_balance(raw: Any) -> WalletBalance:
    try:
        return WalletBalance(amount=float(_require(raw, "amount")))
    except (TypeError, ValueError, OverflowError) as exc:
        raise ProtocolError("amount is not a number") from exc


def parse_identity(raw: Any) -> WalletIdentity:
    identity = WalletIdentity(
        blockchain_address=str(_require(raw, "blockchain_address")),
        private_key=str(_require(raw, "private_key")),
        public_key=str(_require(raw, "public_key")),
    )
    if not identity.blockchain_address:
        raise ApplicationError("wallet has no blockchain address")
    return identity


class GatewayClient:
    """Single-attempt HTTP access to the wallet server and miner nodes.

    The ``get_*``/``post_*`` methods block and raise ``GatewayError``. The
    ``fetch_*``/``submit_*`` coroutines run them off the event loop and
    return a ``Result`` instead of raising.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise NetworkError(f"unable to reach {url}") from exc
        if response.status_code >= 400:
            raise ApplicationError(f"{url} returned HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise ProtocolError(f"{url} returned malformed JSON") from exc

    def get_chain(self, base_url: str) -> Blockchain:
        data = self._request("GET", f"{base_url}{CHAIN_PATH}")
        blocks = data.get("blocks", data.get("chain")) if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise ProtocolError("missing field 'blocks'")
        return [parse_block(raw) for raw in blocks]

    def get_wallet_identity(self, base_url: str, role: Role) -> WalletIdentity:
        if role == "miner":
            data = self._request("GET", f"{base_url}{MINER_WALLET_PATH}")
        else:
            # The wallet server creates and registers a wallet per POST.
            data = self._request("POST", f"{base_url}{USER_WALLET_PATH}")
        return parse_identity(data)

    def get_wallet_balance(self, base_url: str, address: str) -> float:
        query = urlencode({"blockchain_address": address})
        data = self._request("GET", f"{base_url}{BALANCE_PATH}?{query}")
        if isinstance(data, dict) and data.get("error"):
            raise ApplicationError(str(data["error"]))
        return parse_balance(data).amount

    def post_transaction(
        self, base_url: str, sender: WalletIdentity, recipient_address: str, value: float
    ) -> None:
        payload = {
            "sender_private_key": sender.private_key,
            "sender_public_key": sender.public_key,
            "sender_blockchain_address": sender.blockchain_address,
            "recipient_blockchain_address": recipient_address,
            "value": str(value),
        }
        data = self._request("POST", f"{base_url}{TRANSACTION_PATH}", json=payload)
        message = _require(data, "message")
        if message != "success":
            raise ApplicationError(f"transaction rejected ({message})")

    async def _run(self, action: str, func: Callable[..., Any], *args: Any) -> Result:
        try:
            value = await asyncio.get_event_loop().run_in_executor(None, partial(func, *args))
        except GatewayError as exc:
            logger.warning("gateway_call_failed", action=action, error_kind=exc.kind, error=str(exc))
            return Result.failure(ErrorInfo(f"Failed to {action}: {exc}"))
        return Result.success(value)

    async def fetch_chain(self, base_url: str) -> Result:
        return await self._run("fetch blockchain data", self.get_chain, base_url)

    async def fetch_wallet_identity(self, base_url: str, role: Role) -> Result:
        return await self._run(f"fetch {role} details", self.get_wallet_identity, base_url, role)

    async def fetch_wallet_balance(self, base_url: str, address: str) -> Result:
        return await self._run("fetch wallet amount", self.get_wallet_balance, base_url, address)

    async def submit_transaction(
        self, base_url: str, sender: WalletIdentity, recipient_address: str, value: float
    ) -> Result:
        return await self._run(
            "send transaction", self.post_transaction, base_url, sender, recipient_address, value
        )
