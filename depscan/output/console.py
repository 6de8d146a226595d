"""
Depscan Console Output
=======================

Rich-powered terminal display for Depscan reports: ELF header summary,
dependency list, QNX link map, and resolution results with the
debugger's shared-library search path.

Uses the DepscanConsole abstraction for consistent styling.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Optional

from rich.markup import escape

from shared.console import DepscanConsole

from depscan.core.models import (
    MAIN_PROGRAM_SONAME,
    Dependency,
    DependencyReport,
    ElfImage,
    LinkMapEntry,
)
from depscan.parsers.elf_parser import machine_name, object_type_name, os_abi_name


# ---------------------------------------------------------------------------
# DepscanConsoleOutput
# ---------------------------------------------------------------------------

class DepscanConsoleOutput:
    """Rich terminal display for Depscan results.

    Usage::

        output = DepscanConsoleOutput()
        output.display(report)
    """

    def __init__(self, console: DepscanConsole | None = None) -> None:
        """Initialise the output renderer.

        Args:
            console: Optional DepscanConsole instance.  A new one is
                     created if not provided.
        """
        self._console: DepscanConsole = console or DepscanConsole()

    def display(self, report: DependencyReport) -> None:
        """Display a complete dependency report."""
        self._console.section("Dependency Analysis")
        self.display_header(report.image, report.path)

        if report.dependencies is None:
            self._console.warning(
                f"{escape(report.path)} carries no dependency information"
            )
            return

        self.display_dependencies(report.dependencies)
        self.display_resolutions(report)

    def display_header(self, image: ElfImage, path: str = "") -> None:
        """Display the ELF header summary panel."""
        byte_order = "little-endian" if image.endianness.value == "little" else "big-endian"
        fields = [("File", escape(path))] if path else []
        fields += [
            ("Class", f"ELF{image.bits} ({byte_order})"),
            ("Type", object_type_name(image.object_type)),
            ("Machine", machine_name(image.machine)),
            ("OS/ABI", os_abi_name(image.os_abi)),
            ("Entry Point", f"0x{image.entry:x}"),
            ("Segments", str(image.ph_count)),
            ("Sections", str(image.sh_count)),
        ]
        self._console.panel("ELF Header", fields)

    def display_dependencies(self, dependencies: list[Dependency]) -> None:
        """Display the dependency list in file order."""
        if not dependencies:
            self._console.info("No dependencies")
            return
        rows = [
            (idx, escape(dep.name), dep.build_id or "[dim]unknown[/dim]")
            for idx, dep in enumerate(dependencies, start=1)
        ]
        self._console.table(
            "Dependencies",
            [("#", "dim"), ("Name", "bold bright_white"), ("Build ID", "bright_cyan")],
            rows,
        )

    def display_link_map(self, entries: list[LinkMapEntry]) -> None:
        """Display the link map of a QNX core dump."""
        if not entries:
            self._console.warning("No QNX link map in this file")
            return
        rows = [
            (
                f"0x{entry.load_base:x}",
                escape(entry.so_name),
                escape(entry.path),
                entry.build_id or "[dim]unknown[/dim]",
            )
            for entry in entries
        ]
        self._console.table(
            "QNX Link Map",
            [
                ("Load Base", "bright_yellow"),
                ("Module", "bold bright_white"),
                ("Path", ""),
                ("Build ID", "bright_cyan"),
            ],
            rows,
        )

    def display_build_id(self, path: str, build_id: Optional[str]) -> None:
        if build_id is None:
            self._console.warning(f"{escape(path)} has no GNU build ID")
        else:
            self._console.print(f"{escape(path)}: [bright_cyan]{build_id}[/bright_cyan]")

    def display_resolutions(self, report: DependencyReport) -> None:
        """Display where each dependency was found."""
        if report.qnx_version is not None:
            self._console.info(f"Built for QNX {report.qnx_version.value / 10:.1f}")
        if report.search_paths:
            self._console.info(
                "Search roots: " + ", ".join(escape(p) for p in report.search_paths)
            )
        if report.program is not None:
            self._console.success(f"Program: {escape(report.program)}")
        elif report.image.kind.value == "core":
            self._console.warning("Crashed program could not be found")

        rows = [(idx, escape(path)) for idx, path in enumerate(report.resolved, start=1)]
        names = {dep.name for dep in report.dependencies or [] if dep.name != MAIN_PROGRAM_SONAME}
        self._console.table(
            "Resolved Libraries",
            [("#", "dim"), ("Path", "bright_green")],
            rows,
            caption=f"{len(report.resolved)} of {len(names)} resolved",
        )

        if report.unresolved_count:
            self._console.warning(
                f"{report.unresolved_count} dependencies could not be resolved"
            )
        if report.solib_search_path:
            self._console.print(
                f"[bold]solib-search-path:[/bold] {escape(report.solib_search_path)}"
            )
