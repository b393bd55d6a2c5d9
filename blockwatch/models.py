"""Domain values shared by the gateway, the sync units and the dashboard."""

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypeVar

T = TypeVar("T")

Severity = Literal["info", "error"]
Role = Literal["miner", "user"]


@dataclass(frozen=True)
class Transaction:
    sender_address: str
    recipient_address: str
    value: float


@dataclass(frozen=True)
class Block:
    timestamp: int
    nonce: int
    previous_hash: str
    transactions: tuple[Transaction, ...] = ()


Blockchain = list[Block]


@dataclass(frozen=True)
class WalletIdentity:
    blockchain_address: str
    private_key: str = field(repr=False)
    public_key: str


@dataclass(frozen=True)
class WalletBalance:
    amount: float


@dataclass(frozen=True)
class MinerTarget:
    id: str
    label: str
    endpoint_url: str


@dataclass(frozen=True)
class ErrorInfo:
    message: str


@dataclass
class WalletViewState:
    """What a wallet card shows. Amount survives errors; loading ends on first outcome."""

    blockchain_address: str = ""
    private_key: str = field(default="", repr=False)
    public_key: str = ""
    amount: float = 0
    is_loading: bool = True
    error: ErrorInfo | None = None

    def apply_identity(self, identity: WalletIdentity) -> None:
        self.blockchain_address = identity.blockchain_address
        self.private_key = identity.private_key
        self.public_key = identity.public_key

    @property
    def identity(self) -> WalletIdentity | None:
        if not self.blockchain_address:
            return None
        return WalletIdentity(
            blockchain_address=self.blockchain_address,
            private_key=self.private_key,
            public_key=self.public_key,
        )


@dataclass
class NotificationState:
    active: bool = False
    severity: Severity = "info"
    message: str = ""


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of one gateway call: either a value or an ErrorInfo."""

    value: Any = None
    error: ErrorInfo | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorInfo) -> "Result[T]":
        return cls(error=error)
