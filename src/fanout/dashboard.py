"""TUI Dashboard for fanout."""

import asyncio
from dataclasses import dataclass
from typing import Sequence

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Vertical
from textual.message import Message
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Input, Label, RichLog, Static
from textual.worker import Worker

from .auth import PasswordPrompt
from .dispatcher import ClientResponse, Dispatcher, HostStatus
from .hosts import Host


STATUS_ICONS = {
    HostStatus.PENDING: ("…", "dim"),
    HostStatus.CONNECTING: ("⇄", "yellow"),
    HostStatus.RUNNING: ("▶", "yellow"),
    HostStatus.SUCCESS: ("✔", "green"),
    HostStatus.FAILED: ("✘", "red"),
}


class HostPanel(Static):
    """A panel displaying the result for a single host."""

    status: reactive[HostStatus] = reactive(HostStatus.PENDING)

    def __init__(self, index: int, host: Host, user: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.index = index
        self.host = host
        self.user = user

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), id=f"header-{self.index}")
        yield RichLog(
            id=f"log-{self.index}",
            highlight=False,
            markup=False,
            wrap=True,
            auto_scroll=True,
        )

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        return f"[{color}]{icon}[/] [{color}][bold]{self.user}@{self.host.label}[/bold][/]"

    def watch_status(self, status: HostStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        header = self.query_one(f"#header-{self.index}", Label)
        header.update(self._get_header())

    def show_response(self, response: ClientResponse) -> None:
        log = self.query_one(f"#log-{self.index}", RichLog)
        for line in response.output.splitlines():
            log.write(Text(line))
        if response.error is not None:
            log.write(Text(f"ERROR: {response.error}", style="bold red"))


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)

    def render(self) -> str:
        status = "Running..." if self.running else "Complete"
        return (
            f"Progress: {self.completed}/{self.total} hosts complete, "
            f"{self.failed} failed | {status} | Press 'q' to quit"
        )


class PasswordScreen(ModalScreen[str | None]):
    """Asks for the SSH password without leaving the dashboard."""

    DEFAULT_CSS = """
    PasswordScreen {
        align: center middle;
    }

    PasswordScreen Vertical {
        width: 60;
        height: auto;
        border: thick $primary;
        background: $surface;
        padding: 1 2;
    }
    """

    BINDINGS = [("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.prompt = prompt

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self.prompt)
            yield Input(password=True, id="password")

    def on_mount(self) -> None:
        self.query_one("#password", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


@dataclass
class HostStatusChange(Message):
    """Message for host status change."""
    index: int
    status: HostStatus


@dataclass
class HostResponse(Message):
    """Message for a collected host response."""
    index: int
    response: ClientResponse


class Dashboard(App):
    """Shows one panel per host while the dispatcher runs."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    HostPanel {
        border: solid $primary;
        height: 100%;
        min-height: 10;
    }

    HostPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    HostPanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self,
        dispatcher: Dispatcher,
        hosts: Sequence[Host],
        password_prompt: PasswordPrompt | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.dispatcher = dispatcher
        self.hosts = hosts
        self.password_prompt = password_prompt
        self.panels: dict[int, HostPanel] = {}
        self.responses: list[ClientResponse] = []
        self._worker: Worker | None = None
        self._next_on_response = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        for index, host in enumerate(self.hosts):
            panel = HostPanel(index, host, self.dispatcher.config.user, id=f"panel-{index}")
            self.panels[index] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start execution when the app mounts."""
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.hosts)

        self.dispatcher.on_status = self._on_status
        # Keep any existing response hook, such as the log writer
        self._next_on_response = self.dispatcher.on_response
        self.dispatcher.on_response = self._on_response
        # The terminal belongs to the app now
        if self.password_prompt is not None:
            self.password_prompt.ask = self.ask_password
        self._worker = self.run_worker(self._run_execution(), exclusive=True)

    async def ask_password(self, prompt: str) -> str | None:
        """Show the password screen and wait for it to be dismissed."""
        answer: asyncio.Future = asyncio.get_running_loop().create_future()

        def _resolve(value: str | None) -> None:
            if not answer.done():
                answer.set_result(value)

        self.call_later(self.push_screen, PasswordScreen(prompt), callback=_resolve)
        return await answer

    async def _run_execution(self) -> None:
        self.responses = await self.dispatcher.run(self.hosts)

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == event.worker.state.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def _on_status(self, index: int, host: Host, status: HostStatus) -> None:
        self.post_message(HostStatusChange(index, status))

    def _on_response(self, index: int, response: ClientResponse) -> None:
        if self._next_on_response:
            self._next_on_response(index, response)
        self.post_message(HostResponse(index, response))

    def on_host_status_change(self, message: HostStatusChange) -> None:
        if message.index in self.panels:
            self.panels[message.index].status = message.status

    def on_host_response(self, message: HostResponse) -> None:
        if message.index in self.panels:
            self.panels[message.index].show_response(message.response)

        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.completed += 1
        if not message.response.ok:
            status_bar.failed += 1

    async def action_quit(self) -> None:
        """Quit the application."""
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
