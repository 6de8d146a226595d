"""
QNX Toolchain Locator
======================

Discovers QNX Software Development Platform (SDP) installations and the
cross debugger they ship, and tells which SDP release a binary was built
with.

An SDP is recognised by its x86_64 cross compiler driver, which lives at
``<sdp>/host/<os>/x86_64/usr/bin/ntox86_64-gcc-<ver>``:

    ================  ============
    Compiler suffix   SDP release
    ================  ============
    ``-5.4.0``        QNX 7.0
    ``-8.3.0``        QNX 7.1
    ================  ============

References:
    - QNX SDP 7.0 / 7.1 installation layout, ``host/`` and ``target/`` trees.
"""

from __future__ import annotations

import os
import sys
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from shared.logger import DepscanLogger

from depscan.core.models import QNXVersion
from depscan.parsers.elf_parser import ByteSource, ElfFile


GCC_EXECUTABLE: str = "ntox86_64-gcc"

_COMPILER_VERSION_TAGS: dict[QNXVersion, str] = {
    QNXVersion.QNX70: "ntox86_64-gcc-5.4.0",
    QNXVersion.QNX71: "ntox86_64-gcc-8.3.0",
}

_COMMENT_VERSION_TAGS: dict[str, QNXVersion] = {
    "qnx700": QNXVersion.QNX70,
    "qnx710": QNXVersion.QNX71,
}

# Compiler directory -> SDP root
_SDP_DEPTH: int = 5


# ---------------------------------------------------------------------------
# QNX version detection
# ---------------------------------------------------------------------------

def detect_qnx_version(source: ByteSource) -> Optional[QNXVersion]:
    """Return the SDP release recorded in the ``.comment`` section of *source*."""
    with ElfFile.open(source) as elf:
        comment = elf.comment()
    if not comment:
        return None
    for tag, version in _COMMENT_VERSION_TAGS.items():
        if tag in comment:
            return version
    return None


# ---------------------------------------------------------------------------
# ToolchainPaths
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ToolchainPaths:
    """SDP roots discovered on this host."""

    qnx70_sdp: Optional[str] = None
    qnx71_sdp: Optional[str] = None

    def sdp_for(self, version: Optional[QNXVersion]) -> Optional[str]:
        """SDP root for *version*; an unknown version selects QNX 7.1."""
        if version is QNXVersion.QNX70:
            return self.qnx70_sdp
        return self.qnx71_sdp

    def gdb_path(self, platform: str = sys.platform) -> Optional[str]:
        """Path of ``ntox86_64-gdb``, taken from the 7.0 SDP when both exist."""
        sdp = self.qnx70_sdp or self.qnx71_sdp
        if sdp is None:
            return None
        if platform.startswith("win"):
            return os.path.join(
                sdp, "host", "win64", "x86_64", "usr", "bin", "ntox86_64-gdb.exe"
            )
        return os.path.join(sdp, "host", "linux", "x86_64", "usr", "bin", "ntox86_64-gdb")


# ---------------------------------------------------------------------------
# ToolchainLocator
# ---------------------------------------------------------------------------

class ToolchainLocator:
    """Searches a set of roots for QNX SDP installations.

    The search runs once, even when several threads call :meth:`locate`
    together; later calls return the cached result.

    Usage::

        locator = ToolchainLocator(["/opt", os.path.expanduser("~")])
        paths = locator.locate()
        if paths is not None:
            print(paths.gdb_path())
    """

    def __init__(
        self,
        search_paths: Sequence[str],
        logger: DepscanLogger | None = None,
    ) -> None:
        self._search_paths = list(search_paths)
        self._logger: DepscanLogger = logger or DepscanLogger("toolchain")
        self._lock = threading.Lock()
        self._searched = False
        self._result: Optional[ToolchainPaths] = None

    @property
    def search_paths(self) -> list[str]:
        return list(self._search_paths)

    def locate(self) -> Optional[ToolchainPaths]:
        """Return the discovered SDP roots, or ``None`` when none was found."""
        with self._lock:
            if not self._searched:
                self._result = self._search()
                self._searched = True
            return self._result

    def _search(self) -> Optional[ToolchainPaths]:
        self._logger.info(
            "Looking for %s in %s", GCC_EXECUTABLE, ", ".join(self._search_paths)
        )
        hits = [
            path
            for root in self._search_paths
            for path in self._crawl(root)
        ]

        roots: dict[QNXVersion, str] = {}
        for version, tag in _COMPILER_VERSION_TAGS.items():
            matches = [path for path in hits if tag in path]
            if matches:
                roots[version] = os.path.normpath(
                    os.path.join(os.path.dirname(matches[0]), *([os.pardir] * _SDP_DEPTH))
                )
                self._logger.info("QNX %s SDP is in %s", _release(version), roots[version])

        if not roots:
            self._logger.warning(
                "Unable to find an SDP in %s", ", ".join(self._search_paths)
            )
            return None
        return ToolchainPaths(
            qnx70_sdp=roots.get(QNXVersion.QNX70),
            qnx71_sdp=roots.get(QNXVersion.QNX71),
        )

    @staticmethod
    def _crawl(root: str) -> list[str]:
        hits: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                if GCC_EXECUTABLE in path:
                    hits.append(path)
        return hits


def _release(version: QNXVersion) -> str:
    return f"{version.value // 10}.{version.value % 10}"
