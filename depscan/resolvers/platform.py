"""
Target-Platform Probe
======================

Decides whether a file found on disk is a binary for the target platform
(QNX by default) rather than a same-named host library.

A candidate is accepted when its OS/ABI is not ``ELFOSABI_LINUX`` and it
either has no program interpreter, or its interpreter path contains the
vendor marker (``/usr/lib/ldqnx-64.so.2`` contains ``"qnx"``).  Failure to
read or parse the candidate yields :attr:`PlatformVerdict.UNKNOWN`, which
callers treat as a rejection.
"""

from __future__ import annotations

from depscan.core.errors import ElfFormatError
from depscan.core.models import PlatformVerdict
from depscan.parsers.elf_parser import ELFOSABI_LINUX, ByteSource, ElfFile


DEFAULT_VENDOR_MARKER: str = "qnx"


def probe_target_platform(
    source: ByteSource,
    vendor_marker: str = DEFAULT_VENDOR_MARKER,
) -> PlatformVerdict:
    """Classify *source* as a target-platform binary or not.

    Args:
        source: Path or in-memory image to probe.
        vendor_marker: Substring identifying the target's dynamic linker.

    Returns:
        ``CONFIRMED``, ``REJECTED``, or ``UNKNOWN`` when the file could not
        be read or is not a valid ELF image.
    """
    try:
        with ElfFile.open(source) as elf:
            if elf.image.os_abi == ELFOSABI_LINUX:
                return PlatformVerdict.REJECTED
            interpreter = elf.interpreter()
    except (OSError, ElfFormatError):
        return PlatformVerdict.UNKNOWN

    if interpreter is None or vendor_marker in interpreter:
        return PlatformVerdict.CONFIRMED
    return PlatformVerdict.REJECTED


def is_target_platform_binary(
    source: ByteSource,
    vendor_marker: str = DEFAULT_VENDOR_MARKER,
) -> bool:
    """``True`` only when the probe positively confirms the target platform."""
    return probe_target_platform(source, vendor_marker) is PlatformVerdict.CONFIRMED
