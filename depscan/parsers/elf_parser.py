"""
ELF Binary Format Parser
==========================

Struct-based reader for the Executable and Linkable Format (ELF) covering
exactly what dependency resolution needs: the file header, the program
header table, the section header table, and on-demand materialisation of
individual sections.

Both ELF32 and ELF64 images in either byte order are supported.  The class
and data-encoding bytes read from ``e_ident`` fix the address width and
byte order for every later read of the same file.

Extracted data:
    - ELF header (class, encoding, OS/ABI, type, machine, table offsets)
    - Program headers / segments
    - Section headers with names resolved through ``.shstrtab``
    - ``DT_NEEDED`` entries from ``.dynamic`` / ``.dynstr``
    - GNU build id (``.note.gnu.build-id``)
    - Debug-info presence (``.debug*`` sections, ``.gnu_debuglink``)
    - Program interpreter (``.interp`` / ``PT_INTERP``) and ``.comment``

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1.
    - Linux man page: elf(5).
"""

from __future__ import annotations

import io
import os
import struct
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional, Union

from depscan.core.errors import ElfFormatError, MalformedHeaderError, TruncatedDataError
from depscan.core.models import (
    ElfImage,
    Endianness,
    ProgramHeader,
    SectionHeader,
)
from depscan.parsers.reader import ByteReader, read_cstring


ByteSource = Union[str, "os.PathLike[str]", bytes, bytearray, memoryview]


# ---------------------------------------------------------------------------
# ELF Constants
# ---------------------------------------------------------------------------

# Magic number
ELF_MAGIC: bytes = b"\x7fELF"
EI_NIDENT: int = 16

# ELF Class (32-bit vs 64-bit)
ELFCLASS32: int = 1
ELFCLASS64: int = 2

# Data encoding (endianness)
ELFDATA2LSB: int = 1  # Little-endian
ELFDATA2MSB: int = 2  # Big-endian

# OS/ABI identification
ELFOSABI_NONE: int = 0
ELFOSABI_LINUX: int = 3

_OSABI_NAMES: dict[int, str] = {
    0: "UNIX - System V",
    1: "HP-UX",
    2: "NetBSD",
    ELFOSABI_LINUX: "Linux/GNU",
    6: "Solaris",
    9: "FreeBSD",
    12: "OpenBSD",
    97: "ARM",
    255: "Standalone",
}

# ELF type
ET_NONE: int = 0
ET_REL: int = 1   # Relocatable
ET_EXEC: int = 2  # Executable
ET_DYN: int = 3   # Shared object / PIE
ET_CORE: int = 4  # Core dump

_ET_NAMES: dict[int, str] = {
    ET_NONE: "NONE",
    ET_REL: "REL (Relocatable)",
    ET_EXEC: "EXEC (Executable)",
    ET_DYN: "DYN (Shared object)",
    ET_CORE: "CORE (Core dump)",
}

# Machine architectures
EM_NONE: int = 0
EM_386: int = 3
EM_MIPS: int = 8
EM_PPC: int = 20
EM_ARM: int = 40
EM_SH: int = 42
EM_X86_64: int = 62
EM_AARCH64: int = 183

_EM_NAMES: dict[int, str] = {
    EM_NONE: "None",
    EM_386: "x86",
    EM_MIPS: "MIPS",
    EM_PPC: "PowerPC",
    EM_ARM: "ARM",
    EM_SH: "SuperH",
    EM_X86_64: "x86_64",
    EM_AARCH64: "AArch64",
}

# Section header types / indices
SHT_NOBITS: int = 8
SHN_UNDEF: int = 0

# Program header types
PT_INTERP: int = 3
PT_NOTE: int = 4

# Dynamic tags
DT_NULL: int = 0
DT_NEEDED: int = 1

# Fixed record sizes (header, program header, section header)
_HEADER_SIZE: dict[int, int] = {32: 0x34, 64: 0x40}
_PHDR_SIZE: dict[int, int] = {32: 0x20, 64: 0x38}
_SHDR_SIZE: dict[int, int] = {32: 0x28, 64: 0x40}

# Well-known section names
SECTION_DYNSTR: str = ".dynstr"
SECTION_DYNAMIC: str = ".dynamic"
SECTION_INTERP: str = ".interp"
SECTION_BUILD_ID: str = ".note.gnu.build-id"
SECTION_DEBUGLINK: str = ".gnu_debuglink"
SECTION_COMMENT: str = ".comment"

# The GNU build-id note header ("GNU\0" + namesz/descsz/type) is 16 bytes;
# the id itself is the 16 bytes that follow.
_BUILD_ID_OFFSET: int = 16
_BUILD_ID_SIZE: int = 16


def machine_name(machine: int) -> str:
    return _EM_NAMES.get(machine, f"unknown({machine})")


def os_abi_name(os_abi: int) -> str:
    return _OSABI_NAMES.get(os_abi, f"unknown({os_abi})")


def object_type_name(object_type: int) -> str:
    return _ET_NAMES.get(object_type, f"0x{object_type:x}")


# ---------------------------------------------------------------------------
# Header encode / decode
# ---------------------------------------------------------------------------

def parse_header(data: bytes) -> ElfImage:
    """Decode the ELF file header at the start of *data*.

    Args:
        data: At least the first 52 (ELF32) or 64 (ELF64) bytes of a file.

    Returns:
        The parsed :class:`ElfImage`.

    Raises:
        MalformedHeaderError: On bad magic, an unknown class or encoding,
            or fewer bytes than the header needs.
    """
    if len(data) < len(ELF_MAGIC) or data[:4] != ELF_MAGIC:
        raise MalformedHeaderError("Header incorrect: missing ELF magic")
    if len(data) < EI_NIDENT:
        raise MalformedHeaderError("Truncated ELF identification")

    ei_class = data[4]
    ei_data = data[5]
    if ei_class == ELFCLASS32:
        bits = 32
    elif ei_class == ELFCLASS64:
        bits = 64
    else:
        raise MalformedHeaderError(f"Unsupported ELF class {ei_class}")
    if ei_data == ELFDATA2LSB:
        endianness = Endianness.LITTLE
    elif ei_data == ELFDATA2MSB:
        endianness = Endianness.BIG
    else:
        raise MalformedHeaderError(f"Unsupported ELF data encoding {ei_data}")

    length = _HEADER_SIZE[bits]
    if len(data) < length:
        raise MalformedHeaderError(
            f"Truncated ELF header: {len(data)} of {length} bytes"
        )

    r = ByteReader(data[:length], bits=bits, endianness=endianness, offset=6)
    return ElfImage(
        bits=bits,
        endianness=endianness,
        ident_version=r.read_u8(),
        os_abi=r.read_u8(),
        abi_version=r.read_u8(),
        ident_padding=r.read_bytes(7),
        object_type=r.read_u16(),
        machine=r.read_u16(),
        version=r.read_u32(),
        entry=r.read_native(),
        ph_offset=r.read_native(),
        sh_offset=r.read_native(),
        flags=r.read_u32(),
        header_size=r.read_u16(),
        ph_entry_size=r.read_u16(),
        ph_count=r.read_u16(),
        sh_entry_size=r.read_u16(),
        sh_count=r.read_u16(),
        sh_string_index=r.read_u16(),
    )


def encode_header(image: ElfImage) -> bytes:
    """Re-encode *image* into the exact on-disk ELF header bytes."""
    prefix = "<" if image.endianness is Endianness.LITTLE else ">"
    native = "Q" if image.is_64bit else "I"
    ident = (
        ELF_MAGIC
        + bytes([
            ELFCLASS64 if image.is_64bit else ELFCLASS32,
            ELFDATA2LSB if image.endianness is Endianness.LITTLE else ELFDATA2MSB,
            image.ident_version,
            image.os_abi,
            image.abi_version,
        ])
        + image.ident_padding
    )
    body = struct.pack(
        f"{prefix}HHI{native}{native}{native}IHHHHHH",
        image.object_type, image.machine, image.version,
        image.entry, image.ph_offset, image.sh_offset,
        image.flags, image.header_size,
        image.ph_entry_size, image.ph_count,
        image.sh_entry_size, image.sh_count,
        image.sh_string_index,
    )
    return ident + body


# ---------------------------------------------------------------------------
# ELF file
# ---------------------------------------------------------------------------

class ElfFile:
    """Random-access reader over a single ELF image.

    The header is parsed on construction; program headers, section headers
    and section contents are read lazily and cached for the lifetime of the
    instance.  A section is either absent from the cache or fully read.

    Usage::

        with ElfFile.open("/path/to/libfoo.so") as elf:
            print(elf.image.kind)
            print(elf.needed_libraries())
            print(elf.build_id())
    """

    def __init__(self, stream: BinaryIO, *, path: Optional[str] = None) -> None:
        """Initialise the reader and parse the ELF header.

        Args:
            stream: Seekable binary stream positioned anywhere.
            path: Filesystem path of the image, used to locate sibling
                debug files.  ``None`` for in-memory images.

        Raises:
            MalformedHeaderError: If the header is not a valid ELF header.
        """
        self._stream = stream
        self._path = path
        self._size: int = self._stream.seek(0, io.SEEK_END)
        self._stream.seek(0)
        self._image: ElfImage = parse_header(self._stream.read(_HEADER_SIZE[64]))
        self._program_headers: Optional[list[ProgramHeader]] = None
        self._section_headers: Optional[list[SectionHeader]] = None
        self._sections: dict[str, bytes] = {}

    @classmethod
    @contextmanager
    def open(cls, source: ByteSource) -> Iterator[ElfFile]:
        """Open *source* (a path or an in-memory buffer) for reading.

        The underlying handle is closed on every exit path.
        """
        if isinstance(source, (bytes, bytearray, memoryview)):
            stream: BinaryIO = io.BytesIO(bytes(source))
            path = None
        else:
            path = os.fspath(source)
            stream = open(path, "rb")
        try:
            yield cls(stream, path=path)
        finally:
            stream.close()

    # ------------------------------------------------------------------ #
    #  Headers
    # ------------------------------------------------------------------ #

    @property
    def image(self) -> ElfImage:
        return self._image

    @property
    def path(self) -> Optional[str]:
        return self._path

    @property
    def program_headers(self) -> list[ProgramHeader]:
        if self._program_headers is None:
            self._program_headers = self._parse_program_headers()
        return self._program_headers

    @property
    def section_headers(self) -> list[SectionHeader]:
        if self._section_headers is None:
            self._section_headers = self._parse_section_headers()
        return self._section_headers

    @property
    def section_names(self) -> list[str]:
        return [sh.name for sh in self.section_headers]

    def segments(self, p_type: int) -> list[ProgramHeader]:
        """Return every program header of type *p_type*."""
        return [ph for ph in self.program_headers if ph.type == p_type]

    def segment_data(self, ph: ProgramHeader) -> bytes:
        """Read the file-backed bytes of segment *ph*."""
        return self._read_at(ph.offset, ph.filesz)

    # ------------------------------------------------------------------ #
    #  Sections
    # ------------------------------------------------------------------ #

    def section_header(self, name: str) -> Optional[SectionHeader]:
        """Return the header of section *name*; the last one wins on duplicates."""
        found: Optional[SectionHeader] = None
        for sh in self.section_headers:
            if sh.name == name:
                found = sh
        return found

    def has_section(self, name: str) -> bool:
        return self.section_header(name) is not None

    def section(self, name: str) -> Optional[bytes]:
        """Return the raw contents of section *name*, or ``None`` if absent."""
        if name in self._sections:
            return self._sections[name]
        sh = self.section_header(name)
        if sh is None:
            return None
        data = self._read_section(sh)
        self._sections[name] = data
        return data

    # ------------------------------------------------------------------ #
    #  Dependency information
    # ------------------------------------------------------------------ #

    def needed_libraries(self) -> Optional[list[str]]:
        """Return the ``DT_NEEDED`` library names in ``.dynamic`` order.

        Returns:
            The list of names (possibly empty), or ``None`` when ``.dynamic``
            or ``.dynstr`` is absent.
        """
        dynstr = self.section(SECTION_DYNSTR)
        dynamic = self.section(SECTION_DYNAMIC)
        if dynstr is None or dynamic is None:
            return None

        reader = ByteReader.for_image(dynamic, self._image)
        entry_size = 2 * reader.native_size
        libs: list[str] = []
        while reader.remaining >= entry_size:
            d_tag = reader.read_native()
            d_val = reader.read_native()
            if d_tag == DT_NULL:
                break
            if d_tag == DT_NEEDED:
                libs.append(read_cstring(dynstr, d_val))
        return libs

    def build_id(self) -> Optional[str]:
        """Return the hex-encoded 16-byte build id, or ``None`` if absent."""
        note = self.section(SECTION_BUILD_ID)
        if note is None or len(note) < _BUILD_ID_OFFSET + _BUILD_ID_SIZE:
            return None
        return note[_BUILD_ID_OFFSET:_BUILD_ID_OFFSET + _BUILD_ID_SIZE].hex()

    def debug_link(self) -> Optional[str]:
        """Return the file name recorded in ``.gnu_debuglink``, if any."""
        data = self.section(SECTION_DEBUGLINK)
        if not data:
            return None
        return read_cstring(data, 0) or None

    def has_debug_info(self) -> bool:
        """Whether this image carries or points at debug information.

        True when a ``.debug*``-style section is embedded, or when
        ``.gnu_debuglink`` names a file that exists next to the image.
        ``.gnu_debuglink`` alone does not count as embedded debug info.
        """
        for name in self.section_names:
            if name != SECTION_DEBUGLINK and "debug" in name:
                return True
        link = self.debug_link()
        if link is None or self._path is None:
            return False
        sibling = os.path.join(os.path.dirname(self._path), link)
        return os.path.isfile(sibling)

    def interpreter(self) -> Optional[str]:
        """Return the program interpreter path, or ``None`` if there is none."""
        data = self.section(SECTION_INTERP)
        if data is None:
            interp_segments = self.segments(PT_INTERP)
            if not interp_segments:
                return None
            data = self.segment_data(interp_segments[0])
        return data.split(b"\x00", 1)[0].decode("utf-8", errors="replace")

    def comment(self) -> Optional[str]:
        """Return the ``.comment`` section text with NULs as newlines."""
        data = self.section(SECTION_COMMENT)
        if data is None:
            return None
        return data.replace(b"\x00", b"\n").decode("utf-8", errors="replace")

    # ------------------------------------------------------------------ #
    #  Table parsing
    # ------------------------------------------------------------------ #

    def _parse_program_headers(self) -> list[ProgramHeader]:
        """Parse all program headers (segments)."""
        h = self._image
        if h.ph_count == 0:
            return []

        size = _PHDR_SIZE[h.bits]
        table = self._read_at(h.ph_offset, h.ph_count * size)
        r = ByteReader.for_image(table, h)
        headers: list[ProgramHeader] = []
        for _ in range(h.ph_count):
            if h.is_64bit:
                # Elf64_Phdr: flags follows type
                p_type = r.read_u32()
                p_flags = r.read_u32()
                p_offset, p_vaddr, p_paddr, p_filesz, p_memsz = (
                    r.read_native() for _ in range(5)
                )
            else:
                # Elf32_Phdr: flags sits after memsz
                p_type = r.read_u32()
                p_offset, p_vaddr, p_paddr, p_filesz, p_memsz = (
                    r.read_native() for _ in range(5)
                )
                p_flags = r.read_u32()
            headers.append(ProgramHeader(
                type=p_type,
                flags=p_flags,
                offset=p_offset,
                vaddr=p_vaddr,
                paddr=p_paddr,
                filesz=p_filesz,
                memsz=p_memsz,
                align=r.read_native(),
            ))
        return headers

    def _parse_section_headers(self) -> list[SectionHeader]:
        """Parse all section headers and resolve their names."""
        h = self._image
        if h.sh_count == 0:
            return []

        size = _SHDR_SIZE[h.bits]
        table = self._read_at(h.sh_offset, h.sh_count * size)
        r = ByteReader.for_image(table, h)
        headers: list[SectionHeader] = []
        for _ in range(h.sh_count):
            headers.append(SectionHeader(
                name_offset=r.read_u32(),
                type=r.read_u32(),
                flags=r.read_native(),
                addr=r.read_native(),
                offset=r.read_native(),
                size=r.read_native(),
                link=r.read_u32(),
                info=r.read_u32(),
                addr_align=r.read_native(),
                entry_size=r.read_native(),
            ))

        if h.sh_string_index == SHN_UNDEF:
            return headers
        if h.sh_string_index >= len(headers):
            raise ElfFormatError(
                f"Section name table index {h.sh_string_index} out of range "
                f"({len(headers)} sections)"
            )

        strtab = self._read_section(headers[h.sh_string_index])
        for sh in headers:
            sh.name = read_cstring(strtab, sh.name_offset)
        return headers

    # ------------------------------------------------------------------ #
    #  Raw I/O
    # ------------------------------------------------------------------ #

    def _read_section(self, sh: SectionHeader) -> bytes:
        if sh.type == SHT_NOBITS or sh.size == 0:
            return b""
        return self._read_at(sh.offset, sh.size)

    def _read_at(self, offset: int, size: int) -> bytes:
        # Offsets and sizes come from the file; check them before allocating.
        if offset + size > self._size:
            raise TruncatedDataError(
                f"{size} bytes at offset {offset} exceed the {self._size}-byte image"
            )
        self._stream.seek(offset)
        data = self._stream.read(size)
        if len(data) != size:
            raise TruncatedDataError(
                f"Expected {size} bytes at offset {offset}, got {len(data)}"
            )
        return data
