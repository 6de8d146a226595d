"""
Depscan Data Models
====================

Pydantic-based data models for ELF images, QNX link maps, dependencies and
resolution results produced by Depscan.

Header-level models mirror the on-disk ELF structures field for field so
that a parsed header can be re-encoded byte for byte.  Higher-level models
(:class:`Dependency`, :class:`ResolutionCandidate`, :class:`DependencyReport`)
are what the debugger-configuration side consumes.

References:
    - TIS Committee. (1995). Executable and Linkable Format (ELF) Specification.
    - System V Application Binary Interface, Edition 4.1.
    - QNX Neutrino RTOS. (2021). Core dump notes (``QNT_LINK_MAP``).
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Endianness(str, enum.Enum):
    """Byte order of an ELF image."""
    LITTLE = "little"
    BIG = "big"


class ObjectKind(str, enum.Enum):
    """Closed set of ELF object-type variants used for dispatch."""
    NONE = "none"
    REL = "rel"
    EXEC = "exec"
    DYN = "dyn"
    CORE = "core"
    OTHER = "other"

    @classmethod
    def from_type(cls, e_type: int) -> ObjectKind:
        """Map a raw ``e_type`` value onto its variant.

        OS- and processor-specific ranges (``0xFE00``-``0xFFFF``) and any
        unassigned value collapse to :attr:`OTHER`.
        """
        return _KIND_BY_TYPE.get(e_type, cls.OTHER)


_KIND_BY_TYPE: dict[int, ObjectKind] = {
    0: ObjectKind.NONE,
    1: ObjectKind.REL,
    2: ObjectKind.EXEC,
    3: ObjectKind.DYN,
    4: ObjectKind.CORE,
}


class PlatformVerdict(str, enum.Enum):
    """Outcome of probing whether a file is a target-platform binary."""
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class QNXVersion(enum.IntEnum):
    """QNX SDP releases recognised from a binary's ``.comment`` section."""
    QNX70 = 70
    QNX71 = 71


# ---------------------------------------------------------------------------
# ELF structures
# ---------------------------------------------------------------------------

class ElfImage(BaseModel):
    """Parsed ELF file header.

    Attributes:
        bits: Address width, 32 or 64.
        endianness: Byte order used by every multi-byte field.
        ident_version: ``EI_VERSION`` byte.
        os_abi: ``EI_OSABI`` byte.
        abi_version: ``EI_ABIVERSION`` byte.
        ident_padding: The seven reserved ``e_ident`` bytes.
        object_type: Raw ``e_type``.
        machine: Raw ``e_machine``.
        version: ``e_version``.
        entry: Entry point virtual address.
        ph_offset: File offset of the program header table.
        sh_offset: File offset of the section header table.
        flags: Processor-specific flags.
        header_size: ``e_ehsize``.
        ph_entry_size: ``e_phentsize``.
        ph_count: Number of program headers.
        sh_entry_size: ``e_shentsize``.
        sh_count: Number of section headers.
        sh_string_index: Index of the section-name string table.
    """
    bits: int = 32
    endianness: Endianness = Endianness.LITTLE
    ident_version: int = 1
    os_abi: int = 0
    abi_version: int = 0
    ident_padding: bytes = b"\x00" * 7
    object_type: int = 0
    machine: int = 0
    version: int = 1
    entry: int = 0
    ph_offset: int = 0
    sh_offset: int = 0
    flags: int = 0
    header_size: int = 0
    ph_entry_size: int = 0
    ph_count: int = 0
    sh_entry_size: int = 0
    sh_count: int = 0
    sh_string_index: int = 0

    @property
    def kind(self) -> ObjectKind:
        """Object-type variant derived from :attr:`object_type`."""
        return ObjectKind.from_type(self.object_type)

    @property
    def is_64bit(self) -> bool:
        return self.bits == 64


class ProgramHeader(BaseModel):
    """A program header (segment descriptor).

    ``type`` and ``flags`` are always 32-bit; every other field is
    native-width.
    """
    type: int = 0
    flags: int = 0
    offset: int = 0
    vaddr: int = 0
    paddr: int = 0
    filesz: int = 0
    memsz: int = 0
    align: int = 0


class SectionHeader(BaseModel):
    """A section header with its resolved name."""
    name_offset: int = 0
    name: str = ""
    type: int = 0
    flags: int = 0
    addr: int = 0
    offset: int = 0
    size: int = 0
    link: int = 0
    info: int = 0
    addr_align: int = 0
    entry_size: int = 0


class NoteRecord(BaseModel):
    """One record from a ``PT_NOTE`` segment."""
    name_size: int = 0
    desc_size: int = 0
    type: int = 0
    name: str = ""
    descriptor: bytes = b""


MAIN_PROGRAM_SONAME: str = "PIE"


class LinkMapEntry(BaseModel):
    """A module recorded in a QNX core dump's link-map note.

    Attributes:
        load_base: Address the module was loaded at.
        so_name: Module name; ``"PIE"`` for the main executable.
        path: Module path on the target.
        build_id: Hex-encoded 16-byte build id, when present in the note.
    """
    load_base: int = 0
    so_name: str = ""
    path: str = ""
    build_id: Optional[str] = None

    @property
    def is_main_program(self) -> bool:
        return self.so_name == MAIN_PROGRAM_SONAME

    def as_dependency(self) -> Dependency:
        return Dependency(name=self.so_name, build_id=self.build_id)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class Dependency(BaseModel):
    """A shared-library dependency: a module name and its build id if known."""
    name: str
    build_id: Optional[str] = None

    def describe(self) -> str:
        return f"{self.name}({self.build_id or 'unknown build ID'})"


class ResolutionCandidate(BaseModel):
    """A file on disk that could satisfy a dependency.

    Attributes:
        path: Filesystem path of the candidate.
        root_index: Index of the search root it was found under; lower
            values have higher priority.
        build_id: Candidate's build id, if it carries one.
        has_debug_info: Whether debug information is embedded or linked.
    """
    path: str
    root_index: int = 0
    build_id: Optional[str] = None
    has_debug_info: bool = False


class DependencyReport(BaseModel):
    """Complete outcome of analysing one ELF file or core dump.

    Attributes:
        path: The analysed file.
        image: Its parsed ELF header.
        dependencies: Extracted dependencies, ``None`` when the file carries
            no dependency information.
        search_paths: Search roots used for resolution, in priority order.
        resolved: One resolved path per satisfiable dependency.
        program: Resolved main program (core dumps only).
        qnx_version: QNX release the analysed program was built for.
        solib_search_path: ``;``-separated directories of ``resolved``.
    """
    path: str = ""
    image: ElfImage = Field(default_factory=ElfImage)
    dependencies: Optional[list[Dependency]] = None
    search_paths: list[str] = Field(default_factory=list)
    resolved: list[str] = Field(default_factory=list)
    program: Optional[str] = None
    qnx_version: Optional[QNXVersion] = None
    solib_search_path: str = ""

    @property
    def unresolved_count(self) -> int:
        if not self.dependencies:
            return 0
        names = {
            dep.name for dep in self.dependencies
            if dep.name != MAIN_PROGRAM_SONAME
        }
        return max(len(names) - len(self.resolved), 0)
