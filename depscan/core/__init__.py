"""
Depscan Core Module
====================

Contains the error hierarchy and data models.  The extraction entry
points live in :mod:`depscan.core.dependencies` and the orchestrator in
:mod:`depscan.core.engine`.
"""

from depscan.core.errors import (
    DepscanError,
    ElfFormatError,
    MalformedHeaderError,
    TruncatedDataError,
)
from depscan.core.models import (
    Dependency,
    DependencyReport,
    ElfImage,
    Endianness,
    LinkMapEntry,
    ObjectKind,
    PlatformVerdict,
    QNXVersion,
    ResolutionCandidate,
)

__all__ = [
    "DepscanError",
    "ElfFormatError",
    "MalformedHeaderError",
    "TruncatedDataError",
    "Dependency",
    "DependencyReport",
    "ElfImage",
    "Endianness",
    "LinkMapEntry",
    "ObjectKind",
    "PlatformVerdict",
    "QNXVersion",
    "ResolutionCandidate",
]
