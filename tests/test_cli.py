"""Tests for the Click command-line interface."""

from __future__ import annotations

import json
import os

import pytest
from click.testing import CliRunner

from depscan.cli import cli

from elf_builder import (
    ET_EXEC,
    ordinal_build_id,
    qnx_binary,
    qnx_core,
    with_section_size,
    write,
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def files(tmp_path, core_modules):
    app = write(tmp_path / "bin" / "myapp", qnx_binary(
        object_type=ET_EXEC,
        needed=["libc.so.5", "libfoo.so.1"],
        build_id=ordinal_build_id(1),
    ))
    libfoo = write(tmp_path / "lib" / "libfoo.so.1", qnx_binary(build_id=ordinal_build_id(3)))
    core = write(tmp_path / "myapp.core", qnx_core(core_modules))
    junk = write(tmp_path / "junk.bin", b"this is not an ELF file" * 4)
    return {"app": app, "libfoo": libfoo, "core": core, "junk": junk, "root": str(tmp_path)}


def test_header(runner, files):
    result = runner.invoke(cli, ["header", files["app"]])
    assert result.exit_code == 0
    assert "ELF64" in result.output
    assert "x86_64" in result.output


def test_deps(runner, files):
    result = runner.invoke(cli, ["deps", files["app"]])
    assert result.exit_code == 0
    assert "libc.so.5" in result.output
    assert "libfoo.so.1" in result.output


def test_buildid(runner, files):
    result = runner.invoke(cli, ["buildid", files["libfoo"]])
    assert result.exit_code == 0
    assert ordinal_build_id(3).hex() in result.output


def test_linkmap(runner, files):
    result = runner.invoke(cli, ["linkmap", files["core"]])
    assert result.exit_code == 0
    assert "PIE" in result.output
    assert "libc.so.5" in result.output


def test_resolve_json(runner, files):
    result = runner.invoke(cli, ["resolve", files["app"], "-s", files["root"], "--json"])
    assert result.exit_code == 0
    report = json.loads(result.output)
    assert report["resolved"] == [files["libfoo"]]
    assert report["solib_search_path"] == os.path.dirname(files["libfoo"])
    assert [d["name"] for d in report["dependencies"]] == ["libc.so.5", "libfoo.so.1"]


def test_resolve_console(runner, files):
    result = runner.invoke(cli, ["resolve", files["core"], "-s", files["root"]])
    assert result.exit_code == 0
    assert "Resolved Libraries" in result.output


@pytest.mark.parametrize("command", ["header", "deps", "buildid", "linkmap", "resolve"])
def test_malformed_file_exits_with_error(runner, files, command):
    result = runner.invoke(cli, [command, files["junk"]])
    assert result.exit_code == 1
    assert "ERROR" in result.output


@pytest.mark.parametrize("command", ["deps", "buildid", "resolve"])
def test_oversized_section_exits_with_error(runner, tmp_path, command):
    app = write(tmp_path / "app", with_section_size(
        qnx_binary(object_type=ET_EXEC, needed=["libc.so.5"]), -1, 1 << 45
    ))
    args = [command, app] + (["-s", str(tmp_path)] if command == "resolve" else [])
    result = runner.invoke(cli, args)
    assert result.exit_code == 1
    assert "ERROR" in result.output


def test_missing_config_rejected(runner, files, tmp_path):
    result = runner.invoke(cli, ["--config", str(tmp_path / "nope.toml"), "header", files["app"]])
    assert result.exit_code == 2


def test_config_file_is_used(runner, files, tmp_path):
    config = tmp_path / "depscan.toml"
    config.write_text(f'[resolver]\nsearch_paths = ["{files["root"]}"]\n')
    result = runner.invoke(cli, ["--config", str(config), "resolve", files["app"], "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output)["search_paths"] == [files["root"]]


def test_invalid_config_value_rejected(runner, files, tmp_path):
    config = tmp_path / "depscan.toml"
    config.write_text("[resolver]\nmax_workers = 0\n")
    result = runner.invoke(cli, ["--config", str(config), "header", files["app"]])
    assert result.exit_code == 2
    assert "max_workers" in result.output
