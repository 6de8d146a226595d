"""Shared fixtures for the Depscan test suite."""

from __future__ import annotations

import pytest

from shared.logger import DepscanLogger

from elf_builder import Module, ordinal_build_id


@pytest.fixture
def quiet_logger() -> DepscanLogger:
    """Logger that discards everything below ERROR and writes nothing to disk."""
    return DepscanLogger("tests", log_level="ERROR", console_output=False)


@pytest.fixture
def core_modules() -> list[Module]:
    """Link map of a small crashed QNX program."""
    return [
        Module("PIE", "/tmp/myapp", ordinal_build_id(1), load_base=0x100000),
        Module("libc.so.5", "/proc/boot/libc.so.5", ordinal_build_id(2), load_base=0x200000),
        Module("libfoo.so.1", "/usr/lib/libfoo.so.1", ordinal_build_id(3), load_base=0x300000),
    ]
