"""
Dependency Resolver
====================

Turns a list of ``(name, optional build id)`` dependencies into concrete
library files on disk.

Resolution Pipeline:
    1. Crawl every search root for files whose base name is a dependency
       name (one executor task per root).
    2. Group hits by base name, remembering the root each hit came from.
    3. Drop candidates that are not confirmed target-platform binaries.
    4. Probe each remaining candidate's build id and debug-info presence.
    5. Rank candidates per name and keep the best one.

Ranking key, most significant first:
    a. debug information present
    b. no known build-id mismatch against the dependency's build id
    c. index of the search root the candidate was found under
    d. path string

Steps 1, 3 and 4 are independent per root / per candidate and run in a
thread pool; the ranking runs only once every probe for a name has
completed and never depends on completion order.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import os
from collections.abc import Iterable, Sequence
from typing import Optional

from shared.logger import DepscanLogger

from depscan.core.dependencies import get_build_id, probe_debug_info
from depscan.core.errors import ElfFormatError
from depscan.core.models import Dependency, PlatformVerdict, ResolutionCandidate
from depscan.resolvers.platform import DEFAULT_VENDOR_MARKER, probe_target_platform


# ---------------------------------------------------------------------------
# Filesystem search
# ---------------------------------------------------------------------------

def crawl_root(root: str, names: Iterable[str]) -> list[str]:
    """Return every file under *root* whose base name is in *names*.

    Directories and files are visited in sorted order so repeated crawls of
    an unchanged tree return identical lists.  A missing root yields no hits.
    """
    wanted = frozenset(names)
    hits: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if filename in wanted:
                hits.append(os.path.join(dirpath, filename))
    return hits


def assign_origins(hits_per_root: Iterable[Sequence[str]]) -> dict[str, int]:
    """Map every hit to the lowest index of the roots it was found under."""
    origins: dict[str, int] = {}
    for root_index, hits in enumerate(hits_per_root):
        for path in hits:
            origins.setdefault(path, root_index)
    return origins


def find_files_in_paths(search_paths: Sequence[str], names: Iterable[str]) -> list[str]:
    """Crawl all *search_paths* in order; a file under nested roots appears once."""
    wanted = frozenset(names)
    return list(assign_origins(crawl_root(root, wanted) for root in search_paths))


def group_by_basename(origins: dict[str, int]) -> dict[str, dict[str, int]]:
    """Group ``{path: root_index}`` hits into ``{basename: {path: root_index}}``."""
    grouped: dict[str, dict[str, int]] = {}
    for path, root_index in origins.items():
        grouped.setdefault(os.path.basename(path), {})[path] = root_index
    return grouped


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def _normalise_build_id(build_id: Optional[str]) -> Optional[str]:
    return build_id.lower() if build_id else None


def ranking_key(
    candidate: ResolutionCandidate,
    expected_build_id: Optional[str],
) -> tuple[bool, bool, int, str]:
    """Total-order sort key for *candidate*; smaller sorts first."""
    expected = _normalise_build_id(expected_build_id)
    actual = _normalise_build_id(candidate.build_id)
    mismatch = expected is not None and actual is not None and actual != expected
    return (not candidate.has_debug_info, mismatch, candidate.root_index, candidate.path)


def rank_candidates(
    candidates: Iterable[ResolutionCandidate],
    expected_build_id: Optional[str] = None,
) -> list[ResolutionCandidate]:
    """Return *candidates* best first."""
    return sorted(candidates, key=lambda c: ranking_key(c, expected_build_id))


# ---------------------------------------------------------------------------
# DependencyResolver
# ---------------------------------------------------------------------------

class DependencyResolver:
    """Resolves dependencies to on-disk library files.

    Usage::

        resolver = DependencyResolver()
        paths = await resolver.resolve(dependencies, ["/work", "/opt/qnx710"])

    Or synchronously::

        paths = resolver.resolve_sync(dependencies, ["/work"])
    """

    def __init__(
        self,
        *,
        vendor_marker: str = DEFAULT_VENDOR_MARKER,
        max_workers: int = 8,
        logger: DepscanLogger | None = None,
    ) -> None:
        """Initialise the resolver.

        Args:
            vendor_marker: Interpreter substring identifying target binaries.
            max_workers: Thread-pool size for crawling and probing.
            logger: Logger instance.  A new one is created if not provided.
        """
        self._vendor_marker = vendor_marker
        self._max_workers = max(1, max_workers)
        self._logger: DepscanLogger = logger or DepscanLogger("resolver")

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    async def resolve(
        self,
        dependencies: Sequence[Dependency],
        search_paths: Sequence[str],
    ) -> list[str]:
        """Resolve each distinct dependency name to at most one file.

        Args:
            dependencies: Dependencies to resolve.
            search_paths: Search roots, highest priority first.

        Returns:
            One path per resolvable name, in first-occurrence order of the
            names in *dependencies*.  Names without any acceptable
            candidate are omitted.
        """
        names = list(dict.fromkeys(dep.name for dep in dependencies))
        if not names or not search_paths:
            return []

        expected: dict[str, str] = {}
        for dep in dependencies:
            if dep.build_id:
                expected[dep.name] = dep.build_id

        loop = asyncio.get_running_loop()
        with concurrent.futures.ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            with self._logger.operation("crawl", roots=len(search_paths)):
                origins = await self._crawl(loop, pool, search_paths, names)
            grouped = group_by_basename(origins)
            with self._logger.operation("probe", names=len(grouped)):
                candidates = await self._probe_all(loop, pool, grouped)

        resolved: list[str] = []
        for name in names:
            ranked = rank_candidates(candidates.get(name, []), expected.get(name))
            if not ranked:
                self._logger.debug("No candidate for %s", name)
                continue
            best = ranked[0]
            self._logger.debug(
                "%s -> %s (debug=%s, build_id=%s, root=%d)",
                name, best.path, best.has_debug_info, best.build_id, best.root_index,
            )
            resolved.append(best.path)

        self._logger.info(
            "Resolved %d of %d dependencies", len(resolved), len(names)
        )
        return resolved

    def resolve_sync(
        self,
        dependencies: Sequence[Dependency],
        search_paths: Sequence[str],
    ) -> list[str]:
        """Synchronous wrapper around :meth:`resolve`."""
        coro = self.resolve(dependencies, search_paths)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, coro).result()
        return asyncio.run(coro)

    def inspect_candidate(self, path: str, root_index: int) -> Optional[ResolutionCandidate]:
        """Probe one file; ``None`` when it is not an acceptable candidate."""
        verdict = probe_target_platform(path, self._vendor_marker)
        if verdict is not PlatformVerdict.CONFIRMED:
            self._logger.decision(path, accepted=False, reason=f"platform {verdict.value}")
            return None
        try:
            build_id = get_build_id(path)
        except (OSError, ElfFormatError) as exc:
            self._logger.decision(path, accepted=False, reason=str(exc))
            return None
        candidate = ResolutionCandidate(
            path=path,
            root_index=root_index,
            build_id=build_id,
            has_debug_info=probe_debug_info(path),
        )
        self._logger.decision(
            path,
            accepted=True,
            reason=f"build_id={build_id or 'unknown'} debug={candidate.has_debug_info}",
        )
        return candidate

    # ------------------------------------------------------------------ #
    #  Pipeline stages
    # ------------------------------------------------------------------ #

    async def _crawl(
        self,
        loop: asyncio.AbstractEventLoop,
        pool: concurrent.futures.Executor,
        search_paths: Sequence[str],
        names: Sequence[str],
    ) -> dict[str, int]:
        """Crawl all roots concurrently; map each hit to its best root index."""
        wanted = frozenset(names)
        results = await asyncio.gather(*(
            loop.run_in_executor(pool, crawl_root, root, wanted)
            for root in search_paths
        ))

        for root, hits in zip(search_paths, results):
            self._logger.debug("Found %d candidate(s) under %s", len(hits), root)
        return assign_origins(results)

    async def _probe_all(
        self,
        loop: asyncio.AbstractEventLoop,
        pool: concurrent.futures.Executor,
        grouped: dict[str, dict[str, int]],
    ) -> dict[str, list[ResolutionCandidate]]:
        """Inspect every candidate concurrently, grouped back by name."""
        jobs = [
            (name, path, root_index)
            for name, paths in grouped.items()
            for path, root_index in paths.items()
        ]
        probed = await asyncio.gather(*(
            loop.run_in_executor(pool, self.inspect_candidate, path, root_index)
            for _name, path, root_index in jobs
        ))

        candidates: dict[str, list[ResolutionCandidate]] = {}
        for (name, _path, _root), candidate in zip(jobs, probed):
            if candidate is not None:
                candidates.setdefault(name, []).append(candidate)
        return candidates
