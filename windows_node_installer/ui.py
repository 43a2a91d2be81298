"""Console output for the installer commands.

Operator-facing status goes through this module (rich, TTY-aware);
``logger.*`` calls carry the diagnostic detail shown with ``--debug``.
"""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.panel import Panel

console = Console(stderr=False, force_terminal=None)

# ── Symbols ────────────────────────────────────────────────────────────────

_PASS = "[bold green]✓[/]"
_FAIL = "[bold red]✗[/]"
_WARN = "[bold yellow]⚠[/]"
_ARROW = "[bold cyan]›[/]"

# ── Status lines ───────────────────────────────────────────────────────────


def phase(title: str) -> None:
    """Bold section header (``CREATE``, ``DESTROY``)."""
    console.print()
    console.print(f"[bold blue]── {title} ──[/]")


def ok(msg: str) -> None:
    console.print(f"  {_PASS} {msg}")


def fail(msg: str) -> None:
    console.print(f"  {_FAIL} [red]{msg}[/]")


def warn(msg: str) -> None:
    console.print(f"  {_WARN} [yellow]{msg}[/]")


def step(msg: str) -> None:
    console.print(f"  {_ARROW} {msg}")


def detail(key: str, value: str) -> None:
    console.print(f"    [bold]{key}[/]: {value}")


def warnings(messages: Iterable[str]) -> None:
    for msg in messages:
        warn(msg)


# ── Panels ─────────────────────────────────────────────────────────────────


def success_panel(title: str, body: str) -> None:
    console.print()
    console.print(
        Panel(body, title=f"[bold green]{title}[/]", border_style="green", padding=(1, 2))
    )


def error_panel(title: str, body: str) -> None:
    console.print()
    console.print(
        Panel(body, title=f"[bold red]{title}[/]", border_style="red", padding=(1, 2))
    )
