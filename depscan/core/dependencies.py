"""
Dependency Extraction
======================

Public entry points that open a file, read what they need, and close it
again.  Dependency extraction dispatches on the object-type variant
produced by header parsing:

    - ``core``        -> QNX link-map note (every entry carries a build id)
    - ``exec``/``dyn`` -> ``DT_NEEDED`` entries (no build ids known)
    - anything else   -> no dependency information

Errors in the primary file (unreadable, bad header) propagate to the
caller.  :func:`probe_debug_info` is the exception: it is used while
exploring resolution candidates and treats any failure as "no debug info".
"""

from __future__ import annotations

from typing import Optional

from depscan.core.errors import ElfFormatError
from depscan.core.models import Dependency, ElfImage, LinkMapEntry, ObjectKind
from depscan.parsers.elf_parser import ByteSource, ElfFile
from depscan.parsers.linkmap import extract_link_map


def read_image(source: ByteSource) -> ElfImage:
    """Parse and return only the ELF header of *source*."""
    with ElfFile.open(source) as elf:
        return elf.image


def get_needed_libs(source: ByteSource) -> Optional[list[str]]:
    """Return ``DT_NEEDED`` names in order, or ``None`` without dynamic data."""
    with ElfFile.open(source) as elf:
        return elf.needed_libraries()


def get_link_map(source: ByteSource) -> list[LinkMapEntry]:
    """Return the QNX link-map entries of a core dump (empty if none)."""
    with ElfFile.open(source) as elf:
        return extract_link_map(elf)


def get_build_id(source: ByteSource) -> Optional[str]:
    """Return the 32-character hex build id of *source*, if it has one."""
    with ElfFile.open(source) as elf:
        return elf.build_id()


def get_dependencies(source: ByteSource) -> Optional[list[Dependency]]:
    """Extract the dependency list of an executable, library or core dump.

    Returns:
        The dependencies in file order, or ``None`` when the object type
        carries no dependency information (or a dynamic object has no
        ``.dynamic``/``.dynstr``).
    """
    with ElfFile.open(source) as elf:
        return dependencies_of(elf)


def dependencies_of(elf: ElfFile) -> Optional[list[Dependency]]:
    """Dispatch dependency extraction on an already-open image."""
    kind = elf.image.kind
    if kind is ObjectKind.CORE:
        return [entry.as_dependency() for entry in extract_link_map(elf)]
    if kind in (ObjectKind.EXEC, ObjectKind.DYN):
        libs = elf.needed_libraries()
        if libs is None:
            return None
        return [Dependency(name=lib) for lib in libs]
    return None


def probe_debug_info(source: ByteSource) -> bool:
    """Whether *source* has debug info; any read failure counts as ``False``."""
    try:
        with ElfFile.open(source) as elf:
            return elf.has_debug_info()
    except (OSError, ElfFormatError):
        return False
