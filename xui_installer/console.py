"""
Nord-themed console output and logging setup.
"""

import datetime
import gzip
import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pyfiglet
from rich.box import ROUNDED
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.style import Style
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from xui_installer import APP_NAME, APP_SUBTITLE, __version__

LOGGER_NAME = "xui_installer"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


# ----------------------------------------------------------------
# Nord-Themed Colors and Rich Console
# ----------------------------------------------------------------
class NordColors:
    """Nord color palette for consistent theming throughout the application."""

    # Polar Night (dark background)
    POLAR_NIGHT_4: str = "#4C566A"

    # Snow Storm (light text)
    SNOW_STORM_1: str = "#D8DEE9"
    SNOW_STORM_2: str = "#E5E9F0"

    # Frost (blue accents)
    FROST_1: str = "#8FBCBB"
    FROST_2: str = "#88C0D0"
    FROST_3: str = "#81A1C1"
    FROST_4: str = "#5E81AC"

    # Aurora (other accents)
    RED: str = "#BF616A"
    YELLOW: str = "#EBCB8B"
    GREEN: str = "#A3BE8C"
    PURPLE: str = "#B48EAD"


console = Console(
    theme=Theme(
        {
            "info": f"bold {NordColors.FROST_2}",
            "warning": f"bold {NordColors.YELLOW}",
            "error": f"bold {NordColors.RED}",
            "success": f"bold {NordColors.GREEN}",
            "section": f"{NordColors.FROST_3} bold",
            "step": f"{NordColors.FROST_2}",
            "command": f"bold {NordColors.FROST_4}",
            "path": f"italic {NordColors.FROST_1}",
        }
    ),
    highlight=False,
)


# ----------------------------------------------------------------
# Logging
# ----------------------------------------------------------------
def rotate_log(log_file: Path, max_size: int) -> Optional[Path]:
    """
    Compress the log file into a timestamped gzip archive once it grows past
    max_size, then truncate it.

    Returns:
        Path of the rotated archive, or None if no rotation happened.
    """
    if not log_file.exists() or log_file.stat().st_size <= max_size:
        return None

    ts = datetime.datetime.now().strftime("%Y%m%d%H%M%S")
    rotated = log_file.with_name(f"{log_file.name}.{ts}.gz")
    with open(log_file, "rb") as fin, gzip.open(rotated, "wb") as fout:
        shutil.copyfileobj(fin, fout)
    open(log_file, "w").close()
    return rotated


def setup_logging(
    log_file: Optional[Path] = None,
    verbose: bool = False,
    max_size: int = 10 * 1024 * 1024,
) -> logging.Logger:
    """
    Configure the installer logger with a Rich console handler and, when
    log_file is given and writable, a plain file handler.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG)

    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_path=False,
    )
    rich_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.addHandler(rich_handler)

    if log_file is not None:
        try:
            os.makedirs(log_file.parent, exist_ok=True)
            rotated = rotate_log(log_file, max_size)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            logger.warning("File logging disabled (%s): %s", log_file, e)
        else:
            file_handler.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
            )
            file_handler.setLevel(logging.DEBUG)
            logger.addHandler(file_handler)
            if rotated:
                logger.info("Rotated log file to %s", rotated)
            logger.debug("Logging initialized: %s", log_file)

    return logger


# ----------------------------------------------------------------
# Banners, Sections and Reports
# ----------------------------------------------------------------
def create_header() -> Panel:
    """
    Create an ASCII art header using Pyfiglet with a Nord-themed gradient.
    """
    fonts = ["slant", "small", "standard"]
    width = min(console.width - 10, 80)
    ascii_art = ""

    for font in fonts:
        try:
            ascii_art = pyfiglet.Figlet(font=font, width=width).renderText(APP_NAME)
        except pyfiglet.FontNotFound:
            continue
        if ascii_art.strip():
            break

    if not ascii_art.strip():
        ascii_art = f"=== {APP_NAME} ===\n"

    colors = [
        NordColors.FROST_1,
        NordColors.FROST_2,
        NordColors.FROST_3,
        NordColors.FROST_4,
    ]
    styled = Text()
    lines = [line for line in ascii_art.splitlines() if line.strip()]
    for i, line in enumerate(lines):
        styled.append(line + "\n", style=f"bold {colors[i % len(colors)]}")

    return Panel(
        styled,
        border_style=Style(color=NordColors.FROST_1),
        padding=(1, 2),
        box=ROUNDED,
        title=f"[bold {NordColors.SNOW_STORM_2}]v{__version__}[/]",
        title_align="right",
        subtitle=f"[bold {NordColors.SNOW_STORM_1}]{APP_SUBTITLE}[/]",
        subtitle_align="center",
    )


def print_section(title: str) -> None:
    """Print a section header with a separator and record it in the log."""
    console.print()
    console.print(f"[section]== {title} ==[/section]")
    console.print(f"[{NordColors.FROST_3}]{'─' * 60}[/]")
    logging.getLogger(LOGGER_NAME).debug("--- %s ---", title)


def print_dry_run(rendered: str) -> None:
    """Echo a would-be mutating operation."""
    line = Text("[DRY-RUN] ", style="command")
    line.append(rendered)
    console.print(line)


STATUS_ICONS: Dict[str, Tuple[str, str]] = {
    "success": ("✓", "success"),
    "failed": ("✗", "error"),
    "skipped": ("→", "step"),
    "in_progress": ("⋯", "warning"),
    "pending": ("?", "step"),
}


def status_report(rows: List[Tuple[str, str, str]]) -> None:
    """
    Display a table with the status of every installer step.

    Args:
        rows: (step description, status, message) tuples in execution order
    """
    table = Table(
        show_header=True,
        header_style=f"bold {NordColors.FROST_1}",
        border_style=NordColors.FROST_3,
        box=ROUNDED,
        title=f"[bold {NordColors.FROST_2}]Installation Status[/]",
        title_justify="center",
    )
    table.add_column("Step", style=f"bold {NordColors.FROST_2}")
    table.add_column("Status", justify="center")
    table.add_column("Message", style=NordColors.SNOW_STORM_1)

    for description, status, message in rows:
        icon, style = STATUS_ICONS.get(status, ("?", "step"))
        table.add_row(
            description,
            Text(f"{icon} {status.upper()}", style=style),
            Text(message),
        )

    console.print(table)
