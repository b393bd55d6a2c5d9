import asyncio
import math
from functools import partial
from typing import Callable, Literal

import structlog

from blockwatch.config import BALANCE_INTERVAL, CHAIN_INTERVAL
from blockwatch.log import log_error
from blockwatch.models import Blockchain, ErrorInfo, MinerTarget, Result, Role, WalletViewState
from blockwatch.services.gateway import GatewayClient
from blockwatch.services.poller import Poller
from blockwatch.services.status import StatusAggregator

logger = structlog.get_logger()

Phase = Literal["idle", "resolving", "ready"]


class BlockchainSync:
    SOURCE = "blockchain"

    def __init__(
        self,
        gateway: GatewayClient,
        base_url: str,
        status: StatusAggregator,
        interval: float = CHAIN_INTERVAL,
        on_change: Callable[["BlockchainSync"], None] | None = None,
    ) -> None:
        self.blocks: Blockchain = []
        self.error: ErrorInfo | None = None
        self._status = status
        self._on_change = on_change
        self._poller: Poller[Blockchain] = Poller(
            partial(gateway.fetch_chain, base_url), interval, self._on_result, name="blockchain"
        )

    @property
    def running(self) -> bool:
        return self._poller.running

    def mount(self) -> None:
        if self._poller.running:
            return
        self._status.notify(self.SOURCE, "info", "Fetching blockchain data...")
        self._poller.start()

    def unmount(self) -> None:
        self._poller.stop()

    def _on_result(self, result: Result) -> None:
        if result.ok:
            self.blocks = list(result.value)
            self.error = None
            self._status.clear(self.SOURCE)
        else:
            self.error = result.error
            self._status.notify(self.SOURCE, "error", result.error.message)
        if self._on_change:
            self._on_change(self)


class WalletSync:
    """Keeps one wallet card in step with its backend.

    Identity is resolved once per (role, target); the balance is then polled
    against the resolved address. Changing the miner target throws away the
    identity and the balance poll and starts over.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        role: Role,
        status: StatusAggregator,
        wallet_url: str,
        target: MinerTarget | None = None,
        balance_interval: float = BALANCE_INTERVAL,
        on_change: Callable[["WalletSync"], None] | None = None,
    ) -> None:
        if role == "miner" and target is None:
            raise ValueError("miner wallet needs a target")
        self.role = role
        self.target = target
        self.wallet_url = wallet_url
        self.balance_interval = balance_interval
        self.state = WalletViewState()
        self.phase: Phase = "idle"
        self.source = f"wallet:{role}"
        self._gateway = gateway
        self._status = status
        self._on_change = on_change
        self._mounted = False
        self._resolution = 0
        self._poller: Poller[float] | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def identity_url(self) -> str:
        if self.role == "miner":
            return self.target.endpoint_url
        return self.wallet_url

    @property
    def polling(self) -> bool:
        return self._poller is not None and self._poller.running

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._resolve()

    def unmount(self) -> None:
        self._mounted = False
        self._resolution += 1
        if self._poller is not None:
            self._poller.stop()
        self._status.clear(self.source)

    def refresh(self) -> None:
        if self._mounted and self.phase != "ready":
            self._resolve()

    def select_miner_target(self, target: MinerTarget) -> None:
        if self.role != "miner":
            raise ValueError("only the miner wallet can change target")
        if target.id == self.target.id:
            return
        logger.info("miner_target_selected", previous=self.target.id, target=target.id)
        self.target = target
        if self._mounted:
            self._resolve()

    async def send(self, recipient_address: str, value: float) -> Result:
        identity = self.state.identity
        if identity is None:
            raise ValueError("wallet is not loaded yet")
        recipient_address = recipient_address.strip()
        if not recipient_address:
            raise ValueError("recipient address is required")
        if not math.isfinite(value) or value <= 0:
            raise ValueError("amount must be positive")
        result = await self._gateway.submit_transaction(self.wallet_url, identity, recipient_address, value)
        logger.info(
            "transaction_submitted",
            role=self.role,
            sender=identity.blockchain_address,
            recipient=recipient_address,
            value=value,
            ok=result.ok,
        )
        return result

    def _resolve(self) -> None:
        self._resolution += 1
        if self._poller is not None:
            self._poller.stop()
        self._status.clear(self.source)
        self.state = WalletViewState()
        self.phase = "resolving"
        self._changed()
        task = asyncio.ensure_future(self._resolve_identity(self._resolution, self.identity_url))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve_identity(self, resolution: int, endpoint: str) -> None:
        try:
            result = await self._gateway.fetch_wallet_identity(endpoint, self.role)
        except Exception as exc:
            log_error(logger, exc, {"role": self.role, "endpoint": endpoint})
            result = Result.failure(ErrorInfo(str(exc) or type(exc).__name__))
        if resolution != self._resolution or not self._mounted:
            logger.info("identity_discarded", role=self.role, endpoint=endpoint)
            return
        if not result.ok:
            self.state.error = result.error
            self.state.is_loading = False
            self._status.notify(self.source, "error", result.error.message)
            self._changed()
            return
        identity = result.value
        self.state.apply_identity(identity)
        self.state.error = None
        self.phase = "ready"
        self._status.clear(self.source)
        logger.info("identity_resolved", role=self.role, endpoint=endpoint, address=identity.blockchain_address)
        self._poll_balance(identity.blockchain_address)
        self._changed()

    def _poll_balance(self, address: str) -> None:
        operation = partial(self._gateway.fetch_wallet_balance, self.wallet_url, address)
        if self._poller is None:
            self._poller = Poller(operation, self.balance_interval, self._on_balance, name=self.source)
            self._poller.start()
        else:
            self._poller.retarget(operation)

    def _on_balance(self, result: Result) -> None:
        self.state.is_loading = False
        if result.ok:
            self.state.amount = result.value
            self.state.error = None
            self._status.clear(self.source)
        else:
            self.state.error = result.error
            self._status.notify(self.source, "error", result.error.message)
        self._changed()

    def _changed(self) -> None:
        if self._on_change:
            self._on_change(self)

    def __repr__(self) -> str:
        target = self.target.id if self.target else None
        return f"WalletSync(role={self.role!r}, target={target!r}, phase={self.phase!r})"
