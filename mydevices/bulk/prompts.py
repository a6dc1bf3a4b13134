"""Operator prompts used by the interactive parts of the bulk commands."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt


class PromptCancelled(Exception):
    """The operator aborted an interactive prompt."""


@dataclass(frozen=True)
class Choice:
    label: str
    value: Any
    description: str = ""


class Prompter(Protocol):
    def select(self, message: str, choices: Sequence[Choice], default: Any = None) -> Any: ...

    def text(self, message: str, default: str | None = None, required: bool = False) -> str: ...

    def confirm(self, message: str, default: bool = False) -> bool: ...


class ConsolePrompter:
    """Prompter backed by rich prompts on the terminal."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def select(self, message: str, choices: Sequence[Choice], default: Any = None) -> Any:
        self.console.print(f"\n{message}")
        default_index = None
        for index, choice in enumerate(choices, 1):
            hint = f" [dim]- {escape(choice.description)}[/dim]" if choice.description else ""
            self.console.print(f"  [bold]{index:>2}[/bold]. {escape(choice.label)}{hint}")
            if default is not None and choice.value == default and default_index is None:
                default_index = index

        try:
            while True:
                answer = IntPrompt.ask(
                    "Select", console=self.console, default=default_index
                )
                if answer is not None and 1 <= answer <= len(choices):
                    return choices[answer - 1].value
                self.console.print(f"[red]Enter a number between 1 and {len(choices)}[/red]")
        except (KeyboardInterrupt, EOFError) as e:
            raise PromptCancelled() from e

    def text(self, message: str, default: str | None = None, required: bool = False) -> str:
        try:
            while True:
                answer = Prompt.ask(message, console=self.console, default=default or "")
                answer = (answer or "").strip()
                if answer or not required:
                    return answer
                self.console.print("[red]A value is required[/red]")
        except (KeyboardInterrupt, EOFError) as e:
            raise PromptCancelled() from e

    def confirm(self, message: str, default: bool = False) -> bool:
        try:
            return Confirm.ask(message, console=self.console, default=default)
        except (KeyboardInterrupt, EOFError) as e:
            raise PromptCancelled() from e
