"""
Depscan Logger
===============

:class:`DepscanLogger` is the logging front for the engine, the resolver
and the toolchain locator.  Records go to a Rich handler on stderr (so
``--json`` output on stdout stays clean) and, optionally, to a rotating
file in plain text or JSON lines.

Every record carries the *component* that emitted it and, inside an
:meth:`DepscanLogger.operation` block, the operation name and any fields
bound to it (search roots, dependency counts).  Candidate decisions made
while resolving are logged at DEBUG through :meth:`DepscanLogger.decision`
with the candidate path and the reason attached as fields.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bold bright_blue",
        "log.level.warning": "bold yellow",
        "log.level.error": "bold red",
    }
)

_FILE_MAX_BYTES = 10 * 1024 * 1024
_FILE_BACKUPS = 5
_PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(operation)s | %(message)s"


class _JSONLinesFormatter(logging.Formatter):
    """One JSON object per record.

    ``{"timestamp", "level", "logger", "component", "operation", "message",
    "fields"}``; ``operation`` and ``fields`` appear only when set.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": getattr(record, "component", None),
            "message": record.getMessage(),
        }
        operation = getattr(record, "operation", "-")
        if operation != "-":
            entry["operation"] = operation
        fields = getattr(record, "fields", None)
        if fields:
            entry["fields"] = fields
        return json.dumps(entry, ensure_ascii=False, default=str)


def _console_handler(level: int) -> logging.Handler:
    return RichHandler(
        console=Console(theme=_LOG_THEME, stderr=True),
        level=level,
        show_path=False,
        markup=False,
    )


def _file_handler(path: Path, level: int, json_lines: bool) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=_FILE_MAX_BYTES, backupCount=_FILE_BACKUPS, encoding="utf-8"
    )
    handler.setLevel(level)
    if json_lines:
        handler.setFormatter(_JSONLinesFormatter())
    else:
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    return handler


# ---------------------------------------------------------------------------
# DepscanLogger
# ---------------------------------------------------------------------------

class DepscanLogger:
    """Logger bound to one Depscan component (``"engine"``, ``"resolver"``...).

    Usage::

        log = DepscanLogger("resolver", log_file="depscan.log", json_logs=True)
        with log.operation("crawl", roots=len(search_paths)):
            log.debug("Found %d candidate(s) under %s", len(hits), root)
        log.decision("/work/lib/libc.so.5", accepted=False, reason="platform rejected")

    Keyword arguments passed to the log methods are recorded as fields of
    that record.
    """

    def __init__(
        self,
        component: str,
        *,
        log_level: str = "INFO",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        console_output: bool = True,
    ) -> None:
        self._component = component
        self._operation: str | None = None
        self._bound: dict[str, Any] = {}

        level = logging.getLevelName(log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

        self._logger = logging.getLogger(f"depscan.{component}")
        self._logger.setLevel(level)
        self._logger.propagate = False
        self._logger.handlers.clear()

        if console_output:
            self._logger.addHandler(_console_handler(level))
        if log_file is not None:
            self._logger.addHandler(_file_handler(Path(log_file), level, json_logs))
        if not self._logger.handlers:
            self._logger.addHandler(logging.NullHandler())

    @property
    def component(self) -> str:
        return self._component

    # ------------------------------------------------------------------ #
    #  Context
    # ------------------------------------------------------------------ #

    @contextmanager
    def operation(self, name: str, **fields: Any) -> Iterator[DepscanLogger]:
        """Tag records emitted inside the block with *name* and *fields*.

        Blocks nest; the outer operation and its fields are restored on exit.
        """
        saved = self._operation, self._bound
        self._operation = name
        self._bound = {**self._bound, **fields}
        try:
            yield self
        finally:
            self._operation, self._bound = saved

    @contextmanager
    def timed(self, label: str) -> Iterator[None]:
        """Log *label* with its wall-clock duration once the block exits."""
        start = time.perf_counter()
        self.debug("Started %s", label)
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.info("Finished %s in %.3f s", label, elapsed, elapsed=round(elapsed, 6))

    # ------------------------------------------------------------------ #
    #  Records
    # ------------------------------------------------------------------ #

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, args, fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.INFO, msg, args, fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._log(logging.WARNING, msg, args, fields)

    def decision(self, path: str, *, accepted: bool, reason: str) -> None:
        """Record whether candidate *path* was kept, and why, at DEBUG."""
        self.debug(
            "%s %s: %s", "Accepted" if accepted else "Skipping", path, reason,
            path=path, accepted=accepted, reason=reason,
        )

    def _log(self, level: int, msg: str, args: tuple[Any, ...], fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(
            level,
            msg,
            *args,
            stacklevel=3,
            extra={
                "component": self._component,
                "operation": self._operation or "-",
                "fields": {**self._bound, **fields},
            },
        )
