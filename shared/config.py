"""
Depscan Configuration
======================

Settings for logging and dependency resolution, read from a TOML file.

Example ``depscan.toml``::

    [global]
    log_level = "DEBUG"
    log_file = "logs/depscan.log"

    [resolver]
    search_paths = ["~/project"]
    sdp_search_paths = ["/opt/qnx", "~/qnx"]
    additional_solib_search_paths = ["~/target-libs"]

Search roots are tried in this order: ``search_paths``, the SDP matching
the program's QNX release, ``additional_solib_search_paths``.  A leading
``~`` in any root is expanded.

References:
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "depscan.toml"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _expand_roots(roots: list[str]) -> list[str]:
    return [os.path.expanduser(root) for root in roots]


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class ResolverConfig:
    """``[resolver]``: where to look for libraries and SDPs.

    ``sdp_search_paths`` are crawled for ``ntox86_64-gcc-*`` to find SDP
    installations; they are not searched for libraries themselves.
    """

    search_paths: list[str] = field(default_factory=list)
    sdp_search_paths: list[str] = field(default_factory=list)
    additional_solib_search_paths: list[str] = field(default_factory=list)
    vendor_marker: str = "qnx"
    max_workers: int = 8

    def __post_init__(self) -> None:
        self.search_paths = _expand_roots(self.search_paths)
        self.sdp_search_paths = _expand_roots(self.sdp_search_paths)
        self.additional_solib_search_paths = _expand_roots(
            self.additional_solib_search_paths
        )
        if not self.vendor_marker:
            raise ValueError("resolver.vendor_marker must not be empty")
        if self.max_workers < 1:
            raise ValueError(f"resolver.max_workers must be positive, got {self.max_workers}")


@dataclass(slots=True)
class GlobalConfig:
    """``[global]``: log verbosity and destinations."""

    log_level: str = "INFO"
    log_file: str | None = None
    log_json: bool = False
    debug: bool = False

    def __post_init__(self) -> None:
        self.log_level = self.log_level.upper()
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"Unknown global.log_level {self.log_level!r}")

    @property
    def effective_level(self) -> str:
        """``DEBUG`` when ``debug`` is set, ``log_level`` otherwise."""
        return logging.getLevelName(logging.DEBUG) if self.debug else self.log_level


# ---------------------------------------------------------------------------
# DepscanConfig
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class DepscanConfig:
    """Complete Depscan configuration.

    Usage:
        >>> config = DepscanConfig.load()                  # depscan.toml, if any
        >>> config = DepscanConfig.load("custom.toml")
        >>> config.resolver.vendor_marker
        'qnx'
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> DepscanConfig:
        """Load configuration from a TOML file.

        With *path* ``None`` the ``depscan.toml`` next to the package is
        read when it exists; otherwise defaults are returned.  Keys a
        section does not declare are ignored.

        Raises:
            FileNotFoundError: *path* was given and does not exist.
            ValueError: A setting is out of range.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=_build_section(GlobalConfig, raw.get("global", {})),
            resolver=_build_section(ResolverConfig, raw.get("resolver", {})),
        )


def _build_section(section: type, data: dict[str, Any]) -> Any:
    known = {f.name for f in fields(section)}
    return section(**{key: value for key, value in data.items() if key in known})
