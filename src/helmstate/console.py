"""Rich console output for helmstate.

Every stage reports through these helpers so a run reads as one stream:
a symbol per message kind, highlighted names, and panels for the parsed
desired state and the run summary.
"""

from collections.abc import Generator, Mapping
from contextlib import contextmanager

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "highlight": "cyan bold",
        "muted": "dim",
    }
)

# Symbol and style per message kind
_SYMBOLS = {
    "info": ("info", "ℹ"),
    "success": ("success", "✓"),
    "warning": ("warning", "⚠"),
    "error": ("error", "✗"),
    "action": ("info", "→"),
    "step": ("muted", "•"),
}

console = Console(theme=_THEME)


def _emit(kind: str, message: str) -> None:
    style, symbol = _SYMBOLS[kind]
    console.print(f"[{style}]{symbol}[/{style}] {message}")


def info(message: str) -> None:
    """Print an informational message."""
    _emit("info", message)


def success(message: str) -> None:
    """Print a message for a completed stage."""
    _emit("success", message)


def warning(message: str) -> None:
    """Print a warning for a failure the run survives.

    Args:
        message: The message to display. Rich markup is interpreted.

    """
    _emit("warning", message)


def error(message: str) -> None:
    """Print a fatal error.

    The message usually carries kubectl or validation output, so markup in
    it is escaped.

    Args:
        message: The error to display.

    """
    _emit("error", escape(message))


def action(message: str) -> None:
    _emit("action", message)


def step(message: str) -> None:
    _emit("step", message)


def debug(message: str, *, verbose: bool) -> None:
    """Print a muted message only when verbose output is enabled."""
    if verbose:
        console.print(f"[muted]· {escape(message)}[/muted]")


def highlight(text: str) -> str:
    """Return text wrapped in highlight markup.

    Args:
        text: Namespace, context or release name. Markup characters are
            escaped.

    Returns:
        Text wrapped in Rich markup for highlighting.

    """
    return f"[highlight]{escape(text)}[/highlight]"


@contextmanager
def spinner(message: str) -> Generator[None, None, None]:
    """Show a spinner while kubectl or a bucket download is running."""
    with console.status(f"[info]{message}[/info]", spinner="dots"):
        yield


def summary_panel(title: str, items: Mapping[str, str]) -> None:
    """Print a panel of label/value rows.

    Args:
        title: Title for the panel.
        items: Rows to display, in order. Values are escaped; an empty
            mapping prints a single "none" row.

    """
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(style="cyan")

    if not items:
        table.add_row("[muted]none[/muted]", "")
    for label, value in items.items():
        table.add_row(f"{escape(label)}:", escape(value))

    console.print(Panel(table, title=f"[bold]{title}[/bold]", border_style="green"))
