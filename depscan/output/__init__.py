"""
Depscan Output Module
======================

Console display for Depscan reports.
"""

from depscan.output.console import DepscanConsoleOutput

__all__ = ["DepscanConsoleOutput"]
