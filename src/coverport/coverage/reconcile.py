"""Source path reconciliation.

Coverage payloads record paths as the instrumented process saw them
(``/app/src/foo.go``), which rarely match the local checkout. Two
strategies find the shared directory structure:

- ``common_ancestor``: climb parents of the first path until every path
  is below it (used to strip absolute roots from counter reports).
- ``PathReconciler``: align path suffixes against an index of the local
  source tree and derive one container->local prefix rewrite.

Only a single global rule is produced; it is applied to every path.
"""

from __future__ import annotations

import os
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import structlog

from coverport.config.constants import SOURCE_INDEX_SKIP_DIRS

log = structlog.get_logger(__name__)

SEP = "/"


def _is_under(directory: str, prefix: str) -> bool:
    return directory == prefix or directory.startswith(prefix.rstrip(SEP) + SEP)


def common_ancestor(paths: Iterable[str]) -> str:
    """Deepest directory containing every path, with a trailing separator.

    Returns ``""`` when the only shared ancestor is the filesystem root
    or the current directory.
    """
    dirs = [str(PurePosixPath(p).parent) for p in paths]
    if not dirs:
        return ""
    prefix = dirs[0]
    for directory in dirs[1:]:
        while not _is_under(directory, prefix) and prefix not in (SEP, "."):
            prefix = str(PurePosixPath(prefix).parent)
    if prefix in (SEP, ".", ""):
        return ""
    return prefix.rstrip(SEP) + SEP


@dataclass(frozen=True, slots=True)
class PathMapping:
    """Prefix rewrite; both prefixes end with a separator."""

    container_prefix: str
    local_prefix: str

    def __post_init__(self) -> None:
        if not self.container_prefix.endswith(SEP):
            raise ValueError(
                f"container_prefix must be a directory ending with '{SEP}': "
                f"{self.container_prefix!r}"
            )
        if not self.local_prefix.endswith(SEP):
            raise ValueError(f"local_prefix must end with '{SEP}': {self.local_prefix}")

    def apply(self, path: str) -> str:
        if path.startswith(self.container_prefix):
            return self.local_prefix + path[len(self.container_prefix) :]
        return path

    def as_dict(self) -> dict[str, str]:
        return {self.container_prefix: self.local_prefix}


@dataclass(frozen=True, slots=True)
class _Nomination:
    container_root: str
    local_root: str


def build_source_index(root: Path) -> dict[str, list[tuple[str, ...]]]:
    """Index local files by filename.

    Values are root-relative segment tuples, sorted so candidate order
    is deterministic. Hidden and dependency-cache directories are skipped.
    """
    index: dict[str, list[tuple[str, ...]]] = defaultdict(list)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [
            d for d in dirnames if not d.startswith(".") and d not in SOURCE_INDEX_SKIP_DIRS
        ]
        rel_dir = Path(dirpath).relative_to(root)
        for name in filenames:
            index[name].append((*rel_dir.parts, name))
    for candidates in index.values():
        candidates.sort()
    return dict(index)


def suffix_score(observed: tuple[str, ...], local: tuple[str, ...]) -> int:
    """Number of trailing segments both paths share, stopping at the first mismatch."""
    score = 0
    for a, b in zip(reversed(observed), reversed(local), strict=False):
        if a != b:
            break
        score += 1
    return score


def _segments(path: str) -> tuple[str, ...]:
    return tuple(part for part in path.split(SEP) if part)


class PathReconciler:
    """Computes and applies the container->local path rewrite.

    Args:
        source_root: Local source checkout.
        exists: Existence check, relative paths are resolved against
            ``source_root``. Defaults to the filesystem.
    """

    def __init__(
        self,
        source_root: Path,
        *,
        exists: Callable[[str], bool] | None = None,
    ) -> None:
        self.source_root = source_root.resolve()
        self._exists = exists or self._exists_on_disk
        self._index: dict[str, list[tuple[str, ...]]] | None = None

    def _exists_on_disk(self, path: str) -> bool:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.source_root / candidate
        return candidate.is_file()

    def exists(self, path: str) -> bool:
        return self._exists(path)

    @property
    def index(self) -> dict[str, list[tuple[str, ...]]]:
        if self._index is None:
            self._index = build_source_index(self.source_root)
        return self._index

    def _nominate(self, path: str) -> _Nomination | None:
        observed = _segments(path)
        if not observed:
            return None
        best: tuple[str, ...] | None = None
        best_score = 0
        for candidate in self.index.get(observed[-1], ()):
            score = suffix_score(observed, candidate)
            if score > best_score:
                best, best_score = candidate, score
        if best is None:
            return None

        suffix = SEP.join(observed[-best_score:])
        container_root = path[: len(path) - len(suffix)]
        if not container_root:
            # A bare relative name gives no prefix to rewrite
            return None
        local_dir = self.source_root.joinpath(*best[: len(best) - best_score])
        return _Nomination(container_root, str(local_dir).rstrip(SEP) + SEP)

    def compute(self, paths: Iterable[str]) -> PathMapping | None:
        """Pick the single best mapping for a set of observed paths.

        Returns None when every path already resolves or nothing matches
        the local tree; callers keep paths as they are in both cases.
        """
        unresolved = sorted({p for p in paths if not self.exists(p)})
        if not unresolved:
            log.debug("reconcile.not_needed")
            return None

        groups: dict[str, list[_Nomination]] = defaultdict(list)
        for path in unresolved:
            nomination = self._nominate(path)
            if nomination is not None:
                groups[nomination.container_root].append(nomination)

        if not groups:
            log.info("reconcile.no_match", unresolved=len(unresolved), root=str(self.source_root))
            return None

        container_root = min(groups, key=lambda root: (-len(groups[root]), root))
        winner = groups[container_root][0]
        mapping = self._narrow(
            PathMapping(winner.container_root, winner.local_root),
            [p for p in unresolved if p.startswith(winner.container_root)],
        )
        log.info(
            "reconcile.mapping",
            container_prefix=mapping.container_prefix,
            local_prefix=mapping.local_prefix,
            votes=len(groups[container_root]),
            unresolved=len(unresolved),
        )
        return mapping

    def _narrow(self, mapping: PathMapping, covered: list[str]) -> PathMapping:
        """Extend both prefixes down to the deepest directory the covered paths share."""
        ancestor = common_ancestor(covered)
        prefix = mapping.container_prefix
        if not ancestor.startswith(prefix) or ancestor == prefix:
            return mapping
        rel = ancestor[len(prefix) :]
        local = mapping.local_prefix + rel
        if not Path(local).is_dir():
            return mapping
        return PathMapping(ancestor, local)

    def reconcile(self, paths: Iterable[str]) -> tuple[PathMapping | None, dict[str, str]]:
        """Compute the mapping and apply it.

        Returns:
            The mapping (or None) and ``{observed: rewritten}`` for every path.
        """
        paths = list(paths)
        mapping = self.compute(paths)
        if mapping is None:
            return None, {p: p for p in paths}
        return mapping, {p: mapping.apply(p) for p in paths}
