"""
Depscan Exceptions
===================

Exception hierarchy for ELF parsing and dependency resolution.

Only structural problems with the *primary* file being parsed are raised.
Optional data that is simply absent (sections, notes, build ids) is
reported as ``None`` or an empty list instead.
"""

from __future__ import annotations


class DepscanError(Exception):
    """Base class for all Depscan errors."""

    pass


class ElfFormatError(DepscanError):
    """The file is not a structurally valid ELF image."""

    pass


class MalformedHeaderError(ElfFormatError):
    """Bad magic, unsupported class/encoding, or a truncated ELF header."""

    pass


class TruncatedDataError(ElfFormatError):
    """A read ran past the end of the available bytes."""

    pass
