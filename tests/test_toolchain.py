"""Tests for SDP discovery and QNX version detection."""

from __future__ import annotations

import os
import time
from concurrent.futures import ThreadPoolExecutor

from depscan.core.models import QNXVersion
from depscan.resolvers.toolchain import ToolchainLocator, ToolchainPaths, detect_qnx_version

from elf_builder import Section, build_elf, comment_section, write

GCC_DIR = os.path.join("host", "linux", "x86_64", "usr", "bin")


def _install_sdp(root, name: str, gcc_version: str) -> str:
    sdp = os.path.join(str(root), name)
    write(os.path.join(sdp, GCC_DIR, f"ntox86_64-gcc-{gcc_version}"), b"#!/bin/sh\n")
    return sdp


def test_detect_qnx_version():
    assert detect_qnx_version(build_elf(sections=[comment_section("GCC: qnx700")])) is QNXVersion.QNX70
    assert detect_qnx_version(build_elf(sections=[comment_section("x", "qnx710 build")])) is QNXVersion.QNX71
    assert detect_qnx_version(build_elf(sections=[comment_section("GCC: (GNU) 12.2")])) is None
    assert detect_qnx_version(build_elf(sections=[Section(".text", b"\x90")])) is None


def test_locates_both_sdps(tmp_path, quiet_logger):
    qnx700 = _install_sdp(tmp_path, "qnx700", "5.4.0")
    qnx710 = _install_sdp(tmp_path, "qnx710", "8.3.0")

    paths = ToolchainLocator([str(tmp_path)], logger=quiet_logger).locate()

    assert paths == ToolchainPaths(qnx70_sdp=qnx700, qnx71_sdp=qnx710)
    assert paths.sdp_for(QNXVersion.QNX70) == qnx700
    assert paths.sdp_for(QNXVersion.QNX71) == qnx710
    assert paths.sdp_for(None) == qnx710


def test_gdb_prefers_qnx70(tmp_path, quiet_logger):
    qnx700 = _install_sdp(tmp_path, "qnx700", "5.4.0")
    _install_sdp(tmp_path, "qnx710", "8.3.0")
    paths = ToolchainLocator([str(tmp_path)], logger=quiet_logger).locate()

    assert paths.gdb_path("linux") == os.path.join(qnx700, GCC_DIR, "ntox86_64-gdb")
    assert paths.gdb_path("win32") == os.path.join(
        qnx700, "host", "win64", "x86_64", "usr", "bin", "ntox86_64-gdb.exe"
    )


def test_gdb_path_without_sdp():
    assert ToolchainPaths().gdb_path("linux") is None


def test_not_found(tmp_path, quiet_logger):
    write(tmp_path / "bin" / "gcc", b"")
    assert ToolchainLocator([str(tmp_path), str(tmp_path / "absent")], logger=quiet_logger).locate() is None


def test_search_runs_once(tmp_path, quiet_logger):
    locator = ToolchainLocator([str(tmp_path)], logger=quiet_logger)
    assert locator.locate() is None
    _install_sdp(tmp_path, "qnx710", "8.3.0")
    assert locator.locate() is None


def test_concurrent_locate_searches_once(tmp_path, quiet_logger, monkeypatch):
    qnx710 = _install_sdp(tmp_path, "qnx710", "8.3.0")
    locator = ToolchainLocator([str(tmp_path)], logger=quiet_logger)
    search = locator._search
    calls = []

    def slow_search():
        calls.append(1)
        time.sleep(0.05)
        return search()

    monkeypatch.setattr(locator, "_search", slow_search)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: locator.locate(), range(8)))

    assert len(calls) == 1
    assert all(paths.qnx71_sdp == qnx710 for paths in results)
