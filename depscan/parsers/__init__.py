"""
Depscan Parsers
================

Decoding of ELF headers, program and section headers, dynamic entries,
GNU build-id notes, and the QNX link-map note of core dumps.
"""

from depscan.parsers.elf_parser import ElfFile, encode_header, parse_header
from depscan.parsers.linkmap import extract_link_map
from depscan.parsers.reader import ByteReader

__all__ = [
    "ByteReader",
    "ElfFile",
    "encode_header",
    "extract_link_map",
    "parse_header",
]
