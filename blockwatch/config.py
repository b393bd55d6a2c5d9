import os
from pathlib import Path

from blockwatch.models import MinerTarget

CONFIG_DIR = Path.home() / ".config" / "blockwatch"

DEFAULT_WALLET_URL = "http://127.0.0.1:8080"
DEFAULT_MINER_URLS = [
    "http://127.0.0.1:5001",
    "http://127.0.0.1:5002",
    "http://127.0.0.1:5003",
]
DEFAULT_TIMEOUT = 3.0

CHAIN_INTERVAL = 5.0
BALANCE_INTERVAL = 3.0


def _float_or_default(value: object, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


class DashboardConfig:
    def __init__(self) -> None:
        self.conf_path = os.environ.get("BLOCKWATCH_CONF", str(CONFIG_DIR / "blockwatch.conf"))
        self.wallet_url = os.environ.get("BLOCKWATCH_WALLET_URL")
        self.miner_urls: list[str | None] = [
            os.environ.get(f"BLOCKWATCH_MINER_{index}") for index in range(1, 4)
        ]
        self.timeout_raw = os.environ.get("BLOCKWATCH_TIMEOUT")
        self.log_level = os.environ.get("BLOCKWATCH_LOG_LEVEL")
        self.log_file = os.environ.get("BLOCKWATCH_LOG_FILE")
        self._load_conf()

        self.wallet_url = (self.wallet_url or DEFAULT_WALLET_URL).rstrip("/")
        self.miner_urls = [
            (url or default).rstrip("/") for url, default in zip(self.miner_urls, DEFAULT_MINER_URLS)
        ]
        # A call must settle before the next tick of the fastest poll.
        self.timeout = min(_float_or_default(self.timeout_raw, DEFAULT_TIMEOUT), BALANCE_INTERVAL, CHAIN_INTERVAL)
        self.log_level = (self.log_level or "INFO").upper()
        self.log_file = self.log_file or str(CONFIG_DIR / "blockwatch.log")

    def _load_conf(self) -> None:
        path = Path(self.conf_path)
        if not path.exists():
            return
        for line in path.read_text().splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip().lower()
            value = value.strip()
            if key == "walleturl" and not self.wallet_url:
                self.wallet_url = value
            elif key in ("miner1", "miner2", "miner3"):
                index = int(key[-1]) - 1
                if not self.miner_urls[index]:
                    self.miner_urls[index] = value
            elif key == "timeout" and not self.timeout_raw:
                self.timeout_raw = value
            elif key == "loglevel" and not self.log_level:
                self.log_level = value
            elif key == "logfile" and not self.log_file:
                self.log_file = value

    def miner_targets(self) -> list[MinerTarget]:
        return [
            MinerTarget(id=f"miner{index}", label=f"Miner {index}", endpoint_url=url)
            for index, url in enumerate(self.miner_urls, start=1)
        ]
