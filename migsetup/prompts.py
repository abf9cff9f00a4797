"""Operator interaction: confirmations, free-text answers and pauses."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.prompt import Confirm, Prompt


@runtime_checkable
class Operator(Protocol):
    """The human running the setup."""

    def confirm(self, question: str, default: bool = False) -> bool: ...

    def ask(self, question: str, default: str = "") -> str: ...

    def pause(self, message: str) -> None: ...


class ConsoleOperator:
    """Operator prompts on the terminal.

    With ``assume_yes`` every confirmation is answered yes, free-text questions
    take their default and pauses return immediately.
    """

    def __init__(self, console: Console | None = None, assume_yes: bool = False) -> None:
        self._console = console or Console()
        self._assume_yes = assume_yes

    def confirm(self, question: str, default: bool = False) -> bool:
        if self._assume_yes:
            self._console.print(f"[cyan]{question}[/cyan] [dim](yes, --yes given)[/dim]")
            return True
        return bool(Confirm.ask(f"[cyan]{question}[/cyan]", default=default, console=self._console))

    def ask(self, question: str, default: str = "") -> str:
        if self._assume_yes:
            return default
        answer = Prompt.ask(
            f"[cyan]{question}[/cyan]",
            default=default,
            show_default=bool(default),
            console=self._console,
        )
        return (answer or "").strip()

    def pause(self, message: str) -> None:
        if self._assume_yes:
            return
        Prompt.ask(f"[cyan]{message}[/cyan]", default="", show_default=False, console=self._console)
