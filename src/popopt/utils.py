"""
Console and logging helpers.

The module-level ``console`` is shared by the command line and the
experiment driver so progress bars, panels and log records interleave
cleanly.
"""

import datetime
import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.rule import Rule
from rich.text import Text

console = Console(
    force_terminal=True,
    no_color=False,
    log_path=False,
    width=191,
    color_system="truecolor",
    legacy_windows=False,
)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level="INFO", log_path=None):
    """
    Route ``logging`` records to the rich console and optionally a file.

    Parameters
    ----------
    level : str or int
        Level of the root logger
    log_path : str, optional
        File the records are appended to as plain text
    """
    handlers = [
        RichHandler(console=console, show_path=False, rich_tracebacks=True, markup=False)
    ]
    if log_path:
        directory = os.path.dirname(log_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]",
                        handlers=handlers, force=True)


def log_message(message, emoji=None, panel=False, title="popopt", border_style="cyan"):
    """Print a timestamped message, optionally framed in a panel."""
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    emoji_str = f" {emoji}" if emoji else ""
    text = f"{timestamp}{emoji_str} {message}"
    console.print(Panel(text, title=title, border_style=border_style) if panel else text)


def log_error(error_message, exception=None):
    timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    error_text = Text()
    error_text.append(f"[{timestamp}] ", style="dim")
    error_text.append("❌ ERROR: ", style="bold red")
    error_text.append(error_message, style="red")
    if exception is not None:
        error_text.append("\n  Exception: ", style="dim")
        error_text.append(f"{type(exception).__name__}: {exception}", style="yellow")
    console.print(Panel(error_text, title="Error", border_style="red", expand=False))


def section_rule(title, style="bold blue"):
    console.print(Rule(title, style=style))


def summary_panel(title, rows, border_style="green"):
    """
    Panel listing ``rows`` as ``label: value`` lines.

    Parameters
    ----------
    title : str
        Panel title
    rows : list of (str, object)
        Labels and values, in display order
    """
    summary = Text()
    for label, value in rows:
        summary.append(f"{label}: ", style="cyan")
        summary.append(f"{value}\n", style="bold yellow")
    return Panel(summary, title=title, border_style=border_style, expand=False)


def create_progress_bar(description="Running"):
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[progress.description]{description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )
