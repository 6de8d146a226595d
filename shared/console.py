"""
Depscan Console
================

Terminal presentation for the Depscan front end: severity-tagged
messages, key/value panels for ELF metadata, and tables of dependencies
and resolved paths.  Log records go to stderr through
:mod:`shared.logger`; everything here is report output on stdout.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme

_DEPSCAN_THEME = Theme(
    {
        "depscan.section": "bold bright_magenta",
        "depscan.success": "bold green",
        "depscan.warning": "bold yellow",
        "depscan.error": "bold red",
        "depscan.info": "bold bright_blue",
        "depscan.key": "bold",
        "depscan.frame": "bright_cyan",
        "depscan.title": "bold bright_cyan",
    }
)

# severity -> (marker, label)
_MESSAGE_TAGS: dict[str, tuple[str, str]] = {
    "success": ("✔", "SUCCESS"),
    "warning": ("⚠", "WARNING"),
    "error": ("✘", "ERROR"),
    "info": ("ℹ", "INFO"),
}

# (header, style)
Column = tuple[str, str]


class DepscanConsole:
    """Report output for the Depscan CLI.

    Usage::

        con = DepscanConsole()
        con.section("Dependency Analysis")
        con.table("Resolved Libraries", [("#", "dim"), ("Path", "")], rows)
        con.warning("2 dependencies could not be resolved")

    Args:
        quiet:  Suppress all output.
        record: Keep a copy of the output for ``console.rich.export_text()``.
    """

    def __init__(self, *, quiet: bool = False, record: bool = False) -> None:
        self._console = Console(
            theme=_DEPSCAN_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
        )

    @property
    def rich(self) -> Console:
        return self._console

    def section(self, title: str) -> None:
        self._console.rule(f"  {title}  ", style="depscan.section", characters="─")
        self._console.print()

    # ------------------------------------------------------------------ #
    #  Messages
    # ------------------------------------------------------------------ #

    def message(self, severity: str, text: str) -> None:
        """Print *text* tagged with *severity* (``success``, ``warning``, ...)."""
        marker, label = _MESSAGE_TAGS[severity]
        style = f"depscan.{severity}"
        self._console.print(f"[{style}][{marker}] {label}:[/{style}] {text}")

    def success(self, text: str) -> None:
        self.message("success", text)

    def warning(self, text: str) -> None:
        self.message("warning", text)

    def error(self, text: str) -> None:
        self.message("error", text)

    def info(self, text: str) -> None:
        self.message("info", text)

    # ------------------------------------------------------------------ #
    #  Structured output
    # ------------------------------------------------------------------ #

    def panel(self, title: str, fields: Sequence[tuple[str, str]]) -> None:
        """Print *fields* as an aligned ``key: value`` block inside a frame."""
        width = max((len(key) for key, _ in fields), default=0) + 1
        body = "\n".join(
            f"[depscan.key]{key + ':':<{width}}[/depscan.key]  {value}"
            for key, value in fields
        )
        self._console.print(Panel(
            body,
            title=f"[depscan.title]{title}[/depscan.title]",
            border_style="depscan.frame",
            padding=(1, 2),
        ))
        self.blank()

    def table(
        self,
        title: str,
        columns: Sequence[Column],
        rows: Sequence[Sequence[Any]],
        *,
        caption: str | None = None,
    ) -> None:
        """Print a table; cells are converted with ``str``."""
        tbl = Table(
            title=title,
            caption=caption,
            border_style="depscan.frame",
            header_style="bold bright_magenta",
            padding=(0, 1),
        )
        for header, style in columns:
            tbl.add_column(header, style=style)
        for row in rows:
            tbl.add_row(*(str(cell) for cell in row))
        self._console.print(tbl)
        self.blank()

    def print(self, *args: Any, **kwargs: Any) -> None:
        self._console.print(*args, **kwargs)

    def blank(self) -> None:
        self._console.print()
