"""
QNX Link-Map Note Decoder
==========================

Recovers the list of loaded modules from a QNX core dump.  Core files have
no ``.dynamic`` section; instead the QNX kernel writes a ``QNT_LINK_MAP``
note into the core's single ``PT_NOTE`` segment describing every module
mapped at dump time (load base, name, path, build id).

Note record layout as written by the QNX dumper::

    u32 namesz | u32 descsz | u32 type | name[namesz - 1] | pad[1] | desc[descsz]

Records follow each other with exactly one padding byte after the name and
no further alignment.  This deviates from the generic ELF note rule of
4-byte alignment and is reproduced as-is.

Link-map descriptor layout::

    +0    u32 reserved
    +4    u32 string table offset        (relative to +32)
    +8    u32 string table size
    +12   u32 build-id table size
    +16   72 reserved bytes
    +88   link-map records, until (string table offset + 32 - 40):
              native load base
              native so-name offset    (into string table)
              40 reserved bytes
              native path offset       (into string table)
    +32 + string table offset          string table
    round_up(32 + offset + size, 4)    build-id table: (u32 reserved, 16 bytes) per module

References:
    - QNX Neutrino RTOS. (2021). ``dumper`` utility and core file notes.
    - TIS Committee. (1995). ELF Specification, Book I, "Note Section".
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from depscan.core.errors import ElfFormatError
from depscan.core.models import ElfImage, LinkMapEntry, NoteRecord
from depscan.parsers.elf_parser import PT_NOTE, ElfFile
from depscan.parsers.reader import ByteReader, read_cstring, round_up


_logger = logging.getLogger("depscan.linkmap")

QNX_NOTE_NAME: str = "QNX"
QNT_LINK_MAP: int = 11

_DESCRIPTOR_HEADER_SIZE: int = 32
_DESCRIPTOR_RESERVED_TAIL: int = 72
_RECORD_RESERVED_SIZE: int = 40
_BUILD_ID_SIZE: int = 16


def iter_notes(data: bytes, image: ElfImage) -> Iterator[NoteRecord]:
    """Yield the note records packed in a ``PT_NOTE`` segment.

    Raises:
        TruncatedDataError: If a record runs past the end of *data*.
    """
    reader = ByteReader.for_image(data, image)
    while not reader.at_end:
        name_size = reader.read_u32()
        desc_size = reader.read_u32()
        note_type = reader.read_u32()
        name = ""
        if name_size > 0:
            name = reader.read_bytes(name_size - 1).decode("utf-8", errors="replace")
            reader.skip(1)
        yield NoteRecord(
            name_size=name_size,
            desc_size=desc_size,
            type=note_type,
            name=name,
            descriptor=reader.read_bytes(desc_size),
        )


def decode_link_map(descriptor: bytes, image: ElfImage) -> list[LinkMapEntry]:
    """Decode one ``QNT_LINK_MAP`` descriptor into link-map entries.

    Build ids are paired with records by ordinal position; a record with no
    build id at its position gets ``None``.
    """
    reader = ByteReader.for_image(descriptor, image)
    reader.skip(4)
    string_table_offset = reader.read_u32()
    string_table_size = reader.read_u32()
    build_id_table_size = reader.read_u32()
    reader.skip(_DESCRIPTOR_RESERVED_TAIL)

    strings_base = _DESCRIPTOR_HEADER_SIZE + string_table_offset
    build_ids = _decode_build_ids(
        descriptor,
        image,
        round_up(strings_base + string_table_size, 4),
        build_id_table_size,
    )

    entries: list[LinkMapEntry] = []
    records_end = string_table_offset + _DESCRIPTOR_HEADER_SIZE - _RECORD_RESERVED_SIZE
    while reader.offset < records_end:
        load_base = reader.read_native()
        so_name_offset = reader.read_native()
        reader.skip(_RECORD_RESERVED_SIZE)
        path_offset = reader.read_native()

        index = len(entries)
        entries.append(LinkMapEntry(
            load_base=load_base,
            so_name=read_cstring(descriptor, strings_base + so_name_offset),
            path=read_cstring(descriptor, strings_base + path_offset),
            build_id=build_ids[index] if index < len(build_ids) else None,
        ))
    return entries


def _decode_build_ids(
    descriptor: bytes, image: ElfImage, start: int, size: int,
) -> list[str]:
    table = descriptor[start:start + size]
    if len(table) != size:
        raise ElfFormatError(
            f"Build-id table of {size} bytes at {start} exceeds descriptor"
        )
    reader = ByteReader.for_image(table, image)
    build_ids: list[str] = []
    while reader.remaining >= 4 + _BUILD_ID_SIZE:
        reader.skip(4)
        build_ids.append(reader.read_bytes(_BUILD_ID_SIZE).hex())
    return build_ids


def extract_link_map(elf: ElfFile) -> list[LinkMapEntry]:
    """Return the modules recorded in *elf*'s QNX link-map note.

    Returns an empty list when the file does not have exactly one
    ``PT_NOTE`` segment, carries no ``QNX``/``QNT_LINK_MAP`` note, or the
    note data is malformed.
    """
    notes = elf.segments(PT_NOTE)
    if len(notes) != 1:
        return []

    entries: list[LinkMapEntry] = []
    try:
        data = elf.segment_data(notes[0])
        for note in iter_notes(data, elf.image):
            if note.name == QNX_NOTE_NAME and note.type == QNT_LINK_MAP:
                entries.extend(decode_link_map(note.descriptor, elf.image))
    except ElfFormatError as exc:
        _logger.debug("Ignoring malformed link-map note in %s: %s", elf.path, exc)
        return []
    return entries


def find_main_program(entries: list[LinkMapEntry]) -> Optional[LinkMapEntry]:
    """Return the entry describing the dumped program itself, if present."""
    for entry in entries:
        if entry.is_main_program:
            return entry
    return None
