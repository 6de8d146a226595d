"""
Synthetic ELF images for tests.

Builds ELF32/ELF64 images in either byte order with arbitrary sections and
segments, plus helpers for the pieces Depscan reads: ``.dynamic`` /
``.dynstr``, GNU build-id notes, ``.gnu_debuglink``, ``.interp``, and the
QNX link-map note of core dumps.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass
from typing import Optional, Sequence

ET_EXEC = 2
ET_DYN = 3
ET_CORE = 4

EM_386 = 3
EM_X86_64 = 62
EM_AARCH64 = 183

SHT_PROGBITS = 1
SHT_STRTAB = 3
SHT_DYNAMIC = 6
SHT_NOTE = 7
SHT_NOBITS = 8

PT_INTERP = 3
PT_NOTE = 4

DT_NULL = 0
DT_NEEDED = 1
DT_SONAME = 14

QNX_INTERP = "/usr/lib/ldqnx-64.so.2"
LINUX_INTERP = "/lib64/ld-linux-x86-64.so.2"


@dataclass
class Section:
    name: str
    data: bytes
    type: int = SHT_PROGBITS


@dataclass
class Module:
    """One link-map record of a QNX core dump."""

    so_name: str
    path: str
    build_id: bytes
    load_base: int = 0x1000


def _prefix(little: bool) -> str:
    return "<" if little else ">"


def _native(bits: int) -> str:
    return "Q" if bits == 64 else "I"


def _align(blob: bytearray, multiple: int) -> None:
    while len(blob) % multiple:
        blob.append(0)


# ---------------------------------------------------------------------------
# Image assembly
# ---------------------------------------------------------------------------

def pack_header(
    *,
    bits: int = 64,
    little: bool = True,
    os_abi: int = 0,
    abi_version: int = 0,
    object_type: int = ET_DYN,
    machine: int = EM_X86_64,
    entry: int = 0,
    ph_offset: int = 0,
    sh_offset: int = 0,
    flags: int = 0,
    ph_count: int = 0,
    sh_count: int = 0,
    sh_string_index: int = 0,
) -> bytes:
    """Pack an ELF file header."""
    ident = bytes([
        0x7F, ord("E"), ord("L"), ord("F"),
        2 if bits == 64 else 1,
        1 if little else 2,
        1,
        os_abi,
        abi_version,
    ]) + b"\x00" * 7
    n = _native(bits)
    return ident + struct.pack(
        f"{_prefix(little)}HHI{n}{n}{n}IHHHHHH",
        object_type, machine, 1,
        entry, ph_offset, sh_offset,
        flags,
        64 if bits == 64 else 52,
        56 if bits == 64 else 32, ph_count,
        64 if bits == 64 else 40, sh_count,
        sh_string_index,
    )


def build_elf(
    *,
    bits: int = 64,
    little: bool = True,
    object_type: int = ET_DYN,
    machine: Optional[int] = None,
    os_abi: int = 0,
    entry: int = 0,
    sections: Sequence[Section] = (),
    segments: Sequence[tuple[int, bytes]] = (),
) -> bytes:
    """Assemble a complete ELF image.

    Layout: header, program headers, segment payloads, section payloads,
    ``.shstrtab``, section header table.  Section 0 is the null section and
    the last section is ``.shstrtab``.
    """
    if machine is None:
        machine = EM_X86_64 if bits == 64 else EM_386
    e = _prefix(little)
    n = _native(bits)
    header_size = 64 if bits == 64 else 52
    ph_size = 56 if bits == 64 else 32

    blob = bytearray(header_size + ph_size * len(segments))

    segment_offsets = []
    for _p_type, payload in segments:
        _align(blob, 4)
        segment_offsets.append(len(blob))
        blob += payload

    shstrtab = bytearray(b"\x00")
    placed = []  # (name_offset, type, offset, size)
    for section in sections:
        name_offset = len(shstrtab)
        shstrtab += section.name.encode() + b"\x00"
        _align(blob, 4)
        offset = len(blob)
        if section.type != SHT_NOBITS:
            blob += section.data
        placed.append((name_offset, section.type, offset, len(section.data)))

    shstrtab_name = len(shstrtab)
    shstrtab += b".shstrtab\x00"
    shstrtab_offset = len(blob)
    blob += shstrtab
    placed.append((shstrtab_name, SHT_STRTAB, shstrtab_offset, len(shstrtab)))

    _align(blob, 8)
    sh_offset = len(blob)
    sh_fmt = f"{e}II{n}{n}{n}{n}II{n}{n}"
    blob += struct.pack(sh_fmt, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0)
    for name_offset, sh_type, offset, size in placed:
        blob += struct.pack(sh_fmt, name_offset, sh_type, 0, 0, offset, size, 0, 0, 1, 0)

    sh_count = len(placed) + 1
    blob[:header_size] = pack_header(
        bits=bits,
        little=little,
        os_abi=os_abi,
        object_type=object_type,
        machine=machine,
        entry=entry,
        ph_offset=header_size if segments else 0,
        sh_offset=sh_offset,
        ph_count=len(segments),
        sh_count=sh_count,
        sh_string_index=sh_count - 1,
    )

    for index, ((p_type, payload), offset) in enumerate(zip(segments, segment_offsets)):
        if bits == 64:
            phdr = struct.pack(
                f"{e}IIQQQQQQ", p_type, 4, offset, 0, 0, len(payload), len(payload), 4
            )
        else:
            phdr = struct.pack(
                f"{e}IIIIIIII", p_type, offset, 0, 0, len(payload), len(payload), 4, 4
            )
        start = header_size + index * ph_size
        blob[start:start + ph_size] = phdr

    return bytes(blob)


# ---------------------------------------------------------------------------
# Section payloads
# ---------------------------------------------------------------------------

def dynamic_sections(
    needed: Sequence[str],
    *,
    bits: int = 64,
    little: bool = True,
    soname: Optional[str] = None,
) -> list[Section]:
    """``.dynstr`` and ``.dynamic`` sections listing *needed* libraries."""
    dynstr = bytearray(b"\x00")
    entries = []
    if soname is not None:
        entries.append((DT_SONAME, len(dynstr)))
        dynstr += soname.encode() + b"\x00"
    for name in needed:
        entries.append((DT_NEEDED, len(dynstr)))
        dynstr += name.encode() + b"\x00"
    entries.append((DT_NULL, 0))

    fmt = f"{_prefix(little)}{_native(bits) * 2}"
    dynamic = b"".join(struct.pack(fmt, tag, value) for tag, value in entries)
    return [
        Section(".dynstr", bytes(dynstr), SHT_STRTAB),
        Section(".dynamic", dynamic, SHT_DYNAMIC),
    ]


def build_id_note(build_id: bytes, *, little: bool = True) -> Section:
    """``.note.gnu.build-id`` section carrying *build_id*."""
    header = struct.pack(f"{_prefix(little)}III", 4, len(build_id), 3) + b"GNU\x00"
    return Section(".note.gnu.build-id", header + build_id, SHT_NOTE)


def debuglink_section(filename: str) -> Section:
    data = bytearray(filename.encode() + b"\x00")
    _align(data, 4)
    data += b"\xde\xad\xbe\xef"
    return Section(".gnu_debuglink", bytes(data))


def interp_section(interpreter: str) -> Section:
    return Section(".interp", interpreter.encode() + b"\x00")


def comment_section(*lines: str) -> Section:
    return Section(".comment", b"".join(line.encode() + b"\x00" for line in lines))


# ---------------------------------------------------------------------------
# QNX link-map note
# ---------------------------------------------------------------------------

def note_record(name: str, note_type: int, descriptor: bytes, *, little: bool = True) -> bytes:
    """One note record with a single padding byte after the name."""
    encoded = name.encode()
    return (
        struct.pack(f"{_prefix(little)}III", len(encoded) + 1, len(descriptor), note_type)
        + encoded
        + b"\x00"
        + descriptor
    )


def link_map_descriptor(
    modules: Sequence[Module], *, bits: int = 64, little: bool = True
) -> bytes:
    """``QNT_LINK_MAP`` descriptor for *modules*, records packed back to back."""
    e = _prefix(little)
    n = _native(bits)
    record_size = 3 * (bits // 8) + 40

    strtab = bytearray()
    offsets = []
    for module in modules:
        name_offset = len(strtab)
        strtab += module.so_name.encode() + b"\x00"
        path_offset = len(strtab)
        strtab += module.path.encode() + b"\x00"
        offsets.append((name_offset, path_offset))

    build_ids = b"".join(b"\x00" * 4 + module.build_id[:16] for module in modules)
    string_table_offset = 56 + len(modules) * record_size

    desc = bytearray(struct.pack(
        f"{e}IIII", 0, string_table_offset, len(strtab), len(build_ids)
    ))
    desc += b"\x00" * 72
    for module, (name_offset, path_offset) in zip(modules, offsets):
        desc += struct.pack(f"{e}{n}{n}", module.load_base, name_offset)
        desc += b"\x00" * 40
        desc += struct.pack(f"{e}{n}", path_offset)
    assert len(desc) == 32 + string_table_offset
    desc += strtab
    _align(desc, 4)
    desc += build_ids
    return bytes(desc)


# ---------------------------------------------------------------------------
# Ready-made images
# ---------------------------------------------------------------------------

def qnx_binary(
    *,
    needed: Sequence[str] = (),
    build_id: Optional[bytes] = None,
    interpreter: Optional[str] = QNX_INTERP,
    debug_info: bool = False,
    debuglink: Optional[str] = None,
    comment: Optional[str] = None,
    bits: int = 64,
    little: bool = True,
    object_type: int = ET_DYN,
    os_abi: int = 0,
    dynamic: bool = True,
) -> bytes:
    """A QNX-style executable or shared object."""
    sections: list[Section] = []
    if interpreter is not None:
        sections.append(interp_section(interpreter))
    if dynamic:
        sections.extend(dynamic_sections(needed, bits=bits, little=little))
    if build_id is not None:
        sections.append(build_id_note(build_id, little=little))
    if comment is not None:
        sections.append(comment_section(comment))
    if debug_info:
        sections.append(Section(".debug_info", b"\x01\x02\x03\x04"))
    if debuglink is not None:
        sections.append(debuglink_section(debuglink))
    sections.append(Section(".bss", b"\x00" * 32, SHT_NOBITS))
    return build_elf(
        bits=bits,
        little=little,
        object_type=object_type,
        os_abi=os_abi,
        sections=sections,
    )


def qnx_core(
    modules: Sequence[Module],
    *,
    bits: int = 64,
    little: bool = True,
    leading_notes: Sequence[bytes] = (),
) -> bytes:
    """A QNX core dump whose single ``PT_NOTE`` segment holds the link map."""
    notes = b"".join(leading_notes) + note_record(
        "QNX", 11, link_map_descriptor(modules, bits=bits, little=little), little=little
    )
    return build_elf(
        bits=bits,
        little=little,
        object_type=ET_CORE,
        segments=[(PT_NOTE, notes)],
    )


# ---------------------------------------------------------------------------
# Corruption helpers
# ---------------------------------------------------------------------------

def _patch_native(image: bytes, offset: int, value: int, bits: int, little: bool) -> bytes:
    blob = bytearray(image)
    struct.pack_into(f"{_prefix(little)}{_native(bits)}", blob, offset, value)
    return bytes(blob)


def _header_native(image: bytes, offset: int, bits: int, little: bool) -> int:
    return struct.unpack_from(f"{_prefix(little)}{_native(bits)}", image, offset)[0]


def with_section_table_offset(
    image: bytes, value: int, *, bits: int = 64, little: bool = True
) -> bytes:
    """Overwrite ``e_shoff``."""
    return _patch_native(image, 0x28 if bits == 64 else 0x20, value, bits, little)


def with_section_size(
    image: bytes, index: int, value: int, *, bits: int = 64, little: bool = True
) -> bytes:
    """Overwrite ``sh_size`` of section *index* (negative counts from the end)."""
    sh_offset = _header_native(image, 0x28 if bits == 64 else 0x20, bits, little)
    sh_count = struct.unpack_from(f"{_prefix(little)}H", image, 0x3C if bits == 64 else 0x30)[0]
    entry = 64 if bits == 64 else 40
    field = sh_offset + (index % sh_count) * entry + (0x20 if bits == 64 else 0x14)
    return _patch_native(image, field, value, bits, little)


def with_segment_size(
    image: bytes, index: int, value: int, *, bits: int = 64, little: bool = True
) -> bytes:
    """Overwrite ``p_filesz`` of program header *index*."""
    header_size = 64 if bits == 64 else 52
    entry = 56 if bits == 64 else 32
    field = header_size + index * entry + (0x20 if bits == 64 else 0x10)
    return _patch_native(image, field, value, bits, little)


def ordinal_build_id(index: int) -> bytes:
    """A recognisable 16-byte build id: every byte equals *index*."""
    return bytes([index & 0xFF]) * 16


def write(path: "os.PathLike[str] | str", data: bytes) -> str:
    """Write *data* to *path*, creating parent directories; return the path."""
    path = os.fspath(path)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(data)
    return path
