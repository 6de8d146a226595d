"""
Depscan Shared Module
=====================

Configuration, structured logging, and console presentation shared by the
Depscan library and its command-line front end.
"""

from shared.config import DepscanConfig, GlobalConfig, ResolverConfig

__all__ = ["DepscanConfig", "GlobalConfig", "ResolverConfig"]
