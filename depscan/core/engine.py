"""
Depscan Analysis Engine
========================

Orchestrates a complete dependency analysis of one ELF executable, shared
object, or QNX core dump and assembles the result into a
:class:`DependencyReport`.

Analysis Pipeline:
    1. Parse the ELF header and extract the dependency list
    2. Core dumps: resolve the crashed program from the ``PIE`` entry,
       renamed to the core file's stem
    3. Detect the QNX release of the program from its ``.comment`` section
    4. Extend the search roots with the matching SDP and any additional
       configured roots
    5. Resolve the shared-library dependencies
    6. Build the ``;``-separated shared-library search path

References:
    - QNX Neutrino RTOS. (2021). Debugging a core file with ntox86_64-gdb.
    - GDB manual, ``set solib-search-path``.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from shared.config import DepscanConfig
from shared.logger import DepscanLogger

from depscan.core.dependencies import dependencies_of
from depscan.core.errors import ElfFormatError
from depscan.core.models import (
    MAIN_PROGRAM_SONAME,
    Dependency,
    DependencyReport,
    ElfImage,
    LinkMapEntry,
    ObjectKind,
    QNXVersion,
)
from depscan.parsers.elf_parser import ElfFile
from depscan.parsers.linkmap import extract_link_map, find_main_program
from depscan.resolvers.resolver import DependencyResolver
from depscan.resolvers.toolchain import ToolchainLocator, detect_qnx_version


SOLIB_PATH_SEPARATOR: str = ";"


def build_solib_search_path(resolved: Sequence[str]) -> str:
    """Join the directories of *resolved* libraries for ``solib-search-path``."""
    return SOLIB_PATH_SEPARATOR.join(os.path.dirname(path) for path in resolved)


# ---------------------------------------------------------------------------
# DepscanEngine
# ---------------------------------------------------------------------------

class DepscanEngine:
    """Runs the dependency analysis pipeline for a single file.

    Usage::

        engine = DepscanEngine()
        report = await engine.analyze("/work/crash/myapp.core", ["/work"])
        print(report.solib_search_path)

    Or synchronously::

        report = engine.analyze_sync("/work/bin/myapp")
    """

    def __init__(
        self,
        config: DepscanConfig | None = None,
        logger: DepscanLogger | None = None,
        locator: ToolchainLocator | None = None,
        resolver: DependencyResolver | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: Depscan configuration.  Defaults are used if not provided.
            logger: Logger instance.  A new one is created if not provided.
            locator: SDP locator.  Built from ``sdp_search_paths`` when not
                provided; without either, no SDP root is added.
            resolver: Dependency resolver.  Built from the configuration when
                not provided.
        """
        self._config: DepscanConfig = config or DepscanConfig()
        self._logger: DepscanLogger = logger or DepscanLogger("engine")
        settings = self._config.resolver

        if locator is None and settings.sdp_search_paths:
            locator = ToolchainLocator(settings.sdp_search_paths, logger=self._logger)
        self._locator: Optional[ToolchainLocator] = locator

        self._resolver: DependencyResolver = resolver or DependencyResolver(
            vendor_marker=settings.vendor_marker,
            max_workers=settings.max_workers,
            logger=self._logger,
        )

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    @property
    def locator(self) -> Optional[ToolchainLocator]:
        return self._locator

    # ------------------------------------------------------------------ #
    #  Main analysis entry point
    # ------------------------------------------------------------------ #

    async def analyze(
        self,
        path: str,
        search_paths: Sequence[str] | None = None,
        program_search_paths: Sequence[str] | None = None,
    ) -> DependencyReport:
        """Analyse *path* and resolve its dependencies.

        Args:
            path: ELF executable, shared object or QNX core dump.
            search_paths: Roots searched first, in priority order.  Falls
                back to the configured ``search_paths``, then to the
                current working directory.
            program_search_paths: Roots searched for the crashed program of
                a core dump.  Defaults to the first search root.

        Returns:
            The populated report.

        Raises:
            ElfFormatError: *path* is not a valid ELF image.
            OSError: *path* cannot be read.
        """
        loop = asyncio.get_running_loop()
        self._logger.info("Starting analysis of %s", path)

        image, dependencies, program_entry = await loop.run_in_executor(
            None, self._extract, path
        )
        roots = list(search_paths or self._config.resolver.search_paths or [os.getcwd()])

        report = DependencyReport(
            path=path,
            image=image,
            dependencies=dependencies,
        )
        if dependencies is None:
            self._logger.info("%s carries no dependency information", path)
            report.search_paths = roots
            return report

        libraries = list(dependencies)
        version_source: Optional[str] = path
        if image.kind is ObjectKind.CORE:
            libraries = [dep for dep in dependencies if dep.name != MAIN_PROGRAM_SONAME]
            if program_entry is not None:
                report.program = await self._resolve_program(
                    path, program_entry.as_dependency(), program_search_paths or roots[:1]
                )
            version_source = report.program

        if version_source is not None:
            report.qnx_version = await loop.run_in_executor(
                None, self._detect_version, version_source
            )

        report.search_paths = await self._search_roots(
            roots, report.qnx_version, with_sdp=version_source is not None
        )
        self._logger.info(
            "Resolving %d shared libraries in %s",
            len(libraries), ", ".join(report.search_paths),
        )
        with self._logger.timed("dependency resolution"):
            report.resolved = await self._resolver.resolve(libraries, report.search_paths)
        report.solib_search_path = build_solib_search_path(report.resolved)

        if report.unresolved_count:
            self._logger.warning(
                "%d dependencies of %s could not be resolved",
                report.unresolved_count, path,
            )
        return report

    def analyze_sync(
        self,
        path: str,
        search_paths: Sequence[str] | None = None,
        program_search_paths: Sequence[str] | None = None,
    ) -> DependencyReport:
        """Synchronous wrapper around :meth:`analyze`."""
        coro = self.analyze(path, search_paths, program_search_paths)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, coro).result()
        return asyncio.run(coro)

    # ------------------------------------------------------------------ #
    #  Pipeline stages
    # ------------------------------------------------------------------ #

    @staticmethod
    def _extract(
        path: str,
    ) -> tuple[ElfImage, Optional[list[Dependency]], Optional[LinkMapEntry]]:
        """Read the header, the dependencies and, for a core, its program entry."""
        with ElfFile.open(path) as elf:
            if elf.image.kind is not ObjectKind.CORE:
                return elf.image, dependencies_of(elf), None
            entries = extract_link_map(elf)
            return (
                elf.image,
                [entry.as_dependency() for entry in entries],
                find_main_program(entries),
            )

    async def _resolve_program(
        self,
        core_path: str,
        program_dep: Dependency,
        search_paths: Sequence[str],
    ) -> Optional[str]:
        """Find the executable that produced *core_path*."""
        program_name = Path(core_path).stem
        renamed = program_dep.model_copy(update={"name": program_name})
        self._logger.info("Resolving program %s", program_name)

        with self._logger.operation("program", core=core_path):
            found = await self._resolver.resolve([renamed], search_paths)
        if not found:
            self._logger.warning(
                "Could not find program %s with build ID %s",
                program_name, program_dep.build_id or "unknown",
            )
            return None
        self._logger.info("Resolved program at %s", found[0])
        return found[0]

    def _detect_version(self, path: str) -> Optional[QNXVersion]:
        try:
            version = detect_qnx_version(path)
        except (OSError, ElfFormatError) as exc:
            self._logger.debug("Cannot read .comment of %s: %s", path, exc)
            return None
        self._logger.debug("QNX version of %s: %s", path, version)
        return version

    async def _search_roots(
        self,
        roots: Sequence[str],
        version: Optional[QNXVersion],
        *,
        with_sdp: bool = True,
    ) -> list[str]:
        """Search roots in priority order: caller roots, SDP, additional roots.

        The SDP is only added once a program is known; an unrecognised
        release selects the QNX 7.1 SDP.
        """
        ordered = list(roots)
        if with_sdp and self._locator is not None:
            loop = asyncio.get_running_loop()
            toolchain = await loop.run_in_executor(None, self._locator.locate)
            sdp = toolchain.sdp_for(version) if toolchain is not None else None
            if sdp is not None:
                ordered.append(sdp)
        ordered.extend(self._config.resolver.additional_solib_search_paths)
        return list(dict.fromkeys(ordered))
