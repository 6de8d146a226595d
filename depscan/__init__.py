"""
Depscan -- ELF / QNX Core Dump Dependency Analysis
===================================================

Extracts the shared-library dependencies of ELF executables, shared
objects, and QNX core dumps, and resolves them to library files on disk
so a cross debugger can be pointed at the right binaries.

Modules:
    - depscan.parsers: ELF structure decoding and the QNX link-map note
    - depscan.core.dependencies: Public extraction entry points
    - depscan.core.engine: Full analysis orchestrator
    - depscan.resolvers: Platform probe, dependency resolver, SDP locator
    - depscan.output: Rich console output
    - depscan.cli: Click-based command-line interface

References:
    - TIS Committee. (1995). Executable and Linkable Format (ELF) Specification.
    - QNX Neutrino RTOS. (2021). Core dump notes.
"""

__version__ = "1.0.0"
__tool_name__ = "depscan"
