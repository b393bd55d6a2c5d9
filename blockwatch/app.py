from datetime import datetime, timezone

import structlog
from rich.console import Group
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, VerticalScroll
from textual.widgets import Button, Footer, Header, Input, Select, Static

from blockwatch import __version__ as BLOCKWATCH_VERSION
from blockwatch.config import DashboardConfig
from blockwatch.log import configure_logging
from blockwatch.models import Block, MinerTarget, NotificationState, WalletViewState
from blockwatch.services.gateway import GatewayClient
from blockwatch.services.status import StatusAggregator
from blockwatch.services.sync import BlockchainSync, WalletSync

logger = structlog.get_logger()


def _format_optional(value: object, empty: str = "-") -> str:
    if value is None:
        return empty
    if isinstance(value, str) and not value.strip():
        return empty
    return str(value)


def _format_timestamp(value: object) -> str:
    try:
        ts = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return "-"
    if ts <= 0:
        return "-"
    # Nodes report nanoseconds.
    if ts > 10**12:
        ts //= 10**9
    try:
        moment = datetime.fromtimestamp(ts, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return "-"
    return moment.strftime("%Y-%m-%d %H:%M:%S UTC")


def _short_hash(value: object, length: int = 12) -> str:
    if not isinstance(value, str) or not value:
        return "-"
    return value[:length]


def block_lines(index: int, block: Block) -> list[str]:
    lines = [
        f"Block #{index}",
        f"  Time:          {_format_timestamp(block.timestamp)}",
        f"  Nonce:         {block.nonce}",
        f"  Previous hash: {_short_hash(block.previous_hash, 24)}",
        f"  Transactions:  {len(block.transactions)}",
    ]
    for tx in block.transactions:
        lines.append(f"    {tx.sender_address} -> {tx.recipient_address}  {tx.value:g}")
    return lines


def wallet_lines(state: WalletViewState, address_label: str) -> list[str]:
    lines = [
        f"Public key:  {_format_optional(state.public_key)}",
        f"Private key: {_format_optional(state.private_key)}",
        f"{address_label} address: {_format_optional(state.blockchain_address)}",
        f"Amount:      {state.amount:g}",
    ]
    if state.is_loading:
        lines.append("Loading data.")
    if state.error is not None:
        lines.append(f"Error: {state.error.message or 'Something went wrong.'}")
    return lines


class NotificationBar(Static):
    def __init__(self) -> None:
        super().__init__()
        self.notification = NotificationState()
        self.last_update = "-"

    def show_state(self, state: NotificationState) -> None:
        self.notification = state
        self.last_update = datetime.now(timezone.utc).strftime("%H:%M:%S UTC")
        self.set_class(state.active and state.severity == "error", "error")
        self.refresh()

    def render(self) -> str:
        if not self.notification.active:
            return f"All streams live | Updated: {self.last_update}"
        label = "Error" if self.notification.severity == "error" else "Info"
        return f"{label}: {self.notification.message} | Updated: {self.last_update}"


class ChainPanel(VerticalScroll):
    def __init__(self, title: str, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = title
        self.add_class("card")
        self._content = Static("... loading")

    def compose(self) -> ComposeResult:
        yield self._content

    def show_blocks(self, blocks: list[Block]) -> None:
        self.border_subtitle = str(len(blocks))
        self.border_subtitle_align = ("right", "top")
        if not blocks:
            self._content.update("No blocks yet.")
            return
        texts = []
        for index, block in enumerate(blocks):
            texts.append(Text("\n".join(block_lines(index, block)), style="dim" if index % 2 else ""))
        self._content.update(Group(*texts))

    def show_message(self, message: str) -> None:
        self._content.update(message)


class WalletCard(VerticalScroll):
    def __init__(self, title: str, targets: list[MinerTarget] | None = None, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = title
        self.add_class("card")
        self.add_class("wallet")
        self._targets = targets or []
        self._content = Static("... loading")

    def compose(self) -> ComposeResult:
        if self._targets:
            yield Select(
                [(target.label, target.id) for target in self._targets],
                value=self._targets[0].id,
                allow_blank=False,
                id="miner-select",
            )
        yield self._content

    def update_lines(self, lines: list[str]) -> None:
        self._content.update("\n".join(lines))


class SendCard(VerticalScroll):
    """Card for entering a recipient and amount to send from the user wallet."""

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = "Send crypto"
        self.border_title_align = ("left", "top")
        self.add_class("card")
        self.add_class("wallet")
        self._address_input = Input(placeholder="Recipient blockchain address", id="send-address")
        self._amount_input = Input(placeholder="Amount", id="send-amount", type="number")
        self._status = Static("", id="send-status")

    def compose(self) -> ComposeResult:
        with Container(id="send-inputs-row"):
            yield self._address_input
            yield self._amount_input
            yield Button("Send", id="send-button", variant="primary")
        yield self._status

    def get_address(self) -> str:
        return self._address_input.value

    def get_amount(self) -> str:
        return self._amount_input.value

    def set_status(self, text: str) -> None:
        self._status.update(text)

    def clear_form(self) -> None:
        self._address_input.value = ""
        self._amount_input.value = ""


class BlockwatchApp(App):
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh_all", "Refresh"),
        ("x", "toggle_send_card", "Send"),
    ]

    CSS = """
    Screen {
        layout: vertical;
    }
    #body {
        height: 1fr;
    }
    #wallets {
        layout: horizontal;
        height: auto;
    }
    .card {
        border: round $primary;
        padding: 0 1;
        height: auto;
    }
    .card.wallet {
        width: 1fr;
        border: round $secondary;
    }
    #chain {
        height: 1fr;
    }
    #send-inputs-row {
        layout: horizontal;
        height: auto;
    }
    #send-address {
        width: 3fr;
    }
    #send-amount {
        width: 1fr;
    }
    NotificationBar {
        dock: bottom;
        height: 1;
        background: $boost;
    }
    NotificationBar.error {
        background: $error;
    }
    """

    def __init__(self, config: DashboardConfig | None = None) -> None:
        super().__init__()
        self.dashboard_config = config or DashboardConfig()
        self.title = f"Blockwatch {BLOCKWATCH_VERSION}"
        self.miner_targets = self.dashboard_config.miner_targets()
        self.gateway = GatewayClient(timeout=self.dashboard_config.timeout)
        self.notifications = StatusAggregator()

        self.notification_bar = NotificationBar()
        self.chain_panel = ChainPanel("Blockchain", id="chain")
        self.miner_card = WalletCard(f"{self.miner_targets[0].label} Wallet", self.miner_targets, id="miner-card")
        self.user_card = WalletCard("User Wallet", id="user-card")
        self.send_card = SendCard(id="send-card")
        self.send_card.display = False

        self.chain_sync = BlockchainSync(
            self.gateway, self.dashboard_config.wallet_url, self.notifications, on_change=self._render_chain
        )
        self.miner_sync = WalletSync(
            self.gateway,
            "miner",
            self.notifications,
            self.dashboard_config.wallet_url,
            target=self.miner_targets[0],
            on_change=self._render_wallet,
        )
        self.user_sync = WalletSync(
            self.gateway, "user", self.notifications, self.dashboard_config.wallet_url, on_change=self._render_wallet
        )

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Container(id="body"):
            with Container(id="wallets"):
                yield self.miner_card
                yield self.user_card
            yield self.send_card
            yield self.chain_panel
        yield self.notification_bar
        yield Footer()

    async def on_mount(self) -> None:
        self.notifications.subscribe(self._render_status)
        self.chain_sync.mount()
        self.miner_sync.mount()
        self.user_sync.mount()
        self._render_status(self.notifications.state)

    async def on_unmount(self) -> None:
        self.chain_sync.unmount()
        self.miner_sync.unmount()
        self.user_sync.unmount()

    def _render_status(self, state: NotificationState) -> None:
        self.notification_bar.show_state(state)
        self._render_chain(self.chain_sync)

    def _render_chain(self, sync: BlockchainSync) -> None:
        own = self.notifications.source_state(BlockchainSync.SOURCE)
        if own is not None:
            self.chain_panel.show_message(own.message)
            return
        self.chain_panel.show_blocks(sync.blocks)

    def _render_wallet(self, sync: WalletSync) -> None:
        if sync.role == "miner":
            self.miner_card.border_title = f"{sync.target.label} Wallet"
            self.miner_card.update_lines(wallet_lines(sync.state, sync.target.label))
        else:
            self.user_card.update_lines(wallet_lines(sync.state, "User"))

    def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id != "miner-select":
            return
        target = next((t for t in self.miner_targets if t.id == event.value), None)
        if target is not None:
            self.miner_sync.select_miner_target(target)

    def action_toggle_send_card(self) -> None:
        self.send_card.display = not self.send_card.display

    def action_refresh_all(self) -> None:
        self.miner_sync.refresh()
        self.user_sync.refresh()

    async def _handle_send(self) -> None:
        address = self.send_card.get_address()
        amount_str = self.send_card.get_amount()
        try:
            amount = float(amount_str)
        except ValueError:
            self.send_card.set_status("Invalid amount")
            self.notify("Invalid amount", title="Send", severity="error")
            return
        try:
            result = await self.user_sync.send(address, amount)
        except ValueError as exc:
            self.send_card.set_status(str(exc))
            self.notify(str(exc), title="Send", severity="warning")
            return
        if result.ok:
            self.send_card.clear_form()
            self.send_card.set_status("Transaction sent.")
        else:
            self.send_card.set_status(result.error.message)
            self.notify(result.error.message, title="Send failed", severity="error")

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "send-button":
            await self._handle_send()


def run() -> None:
    config = DashboardConfig()
    configure_logging(config.log_level, config.log_file)
    logger.info("dashboard_starting", wallet_url=config.wallet_url, miners=config.miner_urls)
    BlockwatchApp(config).run()
