"""Default pairing hook -- shows the pairing payload in the terminal."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

console = Console()


def print_pairing_code(payload: str) -> None:
    console.print(
        Panel(
            payload,
            title="[bold green]Pair this device[/bold green]",
            subtitle="scan or enter the code on the phone",
            expand=False,
        )
    )
