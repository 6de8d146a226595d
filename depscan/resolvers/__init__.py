"""
Depscan Resolvers
==================

Target-platform probing, dependency resolution against search roots, and
QNX SDP discovery.
"""

from depscan.resolvers.platform import is_target_platform_binary, probe_target_platform
from depscan.resolvers.resolver import DependencyResolver
from depscan.resolvers.toolchain import ToolchainLocator, ToolchainPaths, detect_qnx_version

__all__ = [
    "DependencyResolver",
    "ToolchainLocator",
    "ToolchainPaths",
    "detect_qnx_version",
    "is_target_platform_binary",
    "probe_target_platform",
]
