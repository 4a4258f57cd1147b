"""Interactive and scripted answers for the provisioning workflow"""

import sys
from typing import Dict, Optional

from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt


class InputSource:
    """Supplies the answers the workflow would otherwise prompt for"""

    def peer_name(self) -> str:
        raise NotImplementedError

    def confirm_overwrite(self, name: str) -> bool:
        raise NotImplementedError

    def listen_port(self, default: int) -> int:
        raise NotImplementedError

    def confirm_bring_up(self, name: str) -> bool:
        raise NotImplementedError

    def config_text(self) -> str:
        raise NotImplementedError


class RichInputSource(InputSource):
    """Prompts on the terminal with rich"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def peer_name(self) -> str:
        return Prompt.ask("Peer name (e.g., laptop-alice)", console=self.console)

    def confirm_overwrite(self, name: str) -> bool:
        return Confirm.ask(
            f"[yellow]'{name}' already exists.[/yellow] Overwrite it?",
            default=False,
            console=self.console,
        )

    def listen_port(self, default: int) -> int:
        return IntPrompt.ask("Server port", default=default, console=self.console)

    def confirm_bring_up(self, name: str) -> bool:
        return Confirm.ask(f"Bring up WireGuard interface '{name}' now?", default=False, console=self.console)

    def config_text(self) -> str:
        self.console.print("[yellow]Paste the WireGuard client config below.[/yellow]")
        self.console.print("[yellow]Press Ctrl+D when done.[/yellow]")
        return sys.stdin.read()


class ScriptedInputSource(InputSource):
    """Preset answers for tests and non-interactive runs; confirmations default to no"""

    def __init__(
        self,
        name: Optional[str] = None,
        overwrite: bool = False,
        port: Optional[int] = None,
        bring_up: bool = False,
        text: str = '',
    ):
        self.name = name
        self.overwrite = overwrite
        self.port = port
        self.bring_up = bring_up
        self.text = text
        self.asked: Dict[str, int] = {}

    def _ask(self, question: str):
        self.asked[question] = self.asked.get(question, 0) + 1

    def peer_name(self) -> str:
        self._ask('peer_name')
        return self.name or ''

    def confirm_overwrite(self, name: str) -> bool:
        self._ask('confirm_overwrite')
        return self.overwrite

    def listen_port(self, default: int) -> int:
        self._ask('listen_port')
        return self.port if self.port is not None else default

    def confirm_bring_up(self, name: str) -> bool:
        self._ask('confirm_bring_up')
        return self.bring_up

    def config_text(self) -> str:
        self._ask('config_text')
        return self.text
