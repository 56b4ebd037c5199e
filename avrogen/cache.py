"""
Incremental compilation cache.

Maps a source directory to the inputs and outputs of its last successful
compilation, and skips recompilation while that record is still valid.

An entry is valid if and only if:
    - the current input set equals the recorded input set
    - no input is newer than recorded (last_modified strategy) or every
      input's content hash is unchanged (hash strategy)
    - every recorded output file still exists

Entries live as one JSON file per source directory in the cache directory.

Invariants:
    - An entry is replaced wholesale, never partially updated
    - If compilation raises, no entry is written; the previous one stays
    - Generated files a directory wrote last time but not this time are
      deleted after a successful recompilation

How to change safely:
    - Bump CACHE_VERSION when the entry format changes; old entries are
      then treated as missing
    - Never store an entry before the compilation it describes succeeded
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from .compiler.orchestrator import CompilationResult
from .config import CacheStrategy
from .errors import SchemaIOError

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

Stamp = Union[int, str]


@dataclass
class CacheEntry:
    """Record of one successful compilation of a source directory.

    Attributes:
        source_dir: Resolved source directory
        strategy: Stamp strategy the input stamps were taken with
        inputs: Input path -> stamp (mtime in ns, or SHA-256 hex digest)
        outputs: Generated sources found under the destination afterwards
        written: Generated sources this directory's compilers produced
    """

    source_dir: str
    strategy: CacheStrategy
    inputs: Dict[str, Stamp] = field(default_factory=dict)
    outputs: List[str] = field(default_factory=list)
    written: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CACHE_VERSION,
            "source_dir": self.source_dir,
            "strategy": self.strategy.value,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "written": self.written,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CacheEntry:
        return cls(
            source_dir=data["source_dir"],
            strategy=CacheStrategy(data["strategy"]),
            inputs=dict(data.get("inputs", {})),
            outputs=list(data.get("outputs", [])),
            written=list(data.get("written", [])),
        )


def file_stamp(path: Path, strategy: CacheStrategy) -> Stamp:
    """Stamp a file for staleness comparison.

    Raises:
        OSError: If the file cannot be read
    """
    if strategy == CacheStrategy.HASH:
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                digest.update(chunk)
        return digest.hexdigest()
    return os.stat(path).st_mtime_ns


class IncrementalCache:
    """Per-directory staleness cache.

    Thread-safety:
        - Entries for different source directories are independent files
        - Two concurrent compilations of the same directory are not
          supported; the last writer's entry wins

    Attributes:
        cache_dir: Directory holding the entry files
        strategy: How input files are stamped

    Example:
        >>> cache = IncrementalCache(Path("target/.avrogen-cache"))
        >>> outputs = cache.compile(src, find_inputs(src), lambda: compile_source_dir(src, dest, opts))
    """

    def __init__(
        self,
        cache_dir: Path,
        strategy: CacheStrategy = CacheStrategy.LAST_MODIFIED,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.strategy = strategy

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def compile(
        self,
        source_dir: Path,
        inputs: Iterable[Path],
        action: Callable[[], CompilationResult],
    ) -> Set[Path]:
        """Return the outputs for ``source_dir``, compiling only if stale.

        Args:
            source_dir: Source directory the inputs belong to
            inputs: Discovered input files
            action: Compiles the directory; called only when stale

        Returns:
            Generated source paths under the destination tree

        Raises:
            Whatever ``action`` raises; the cache entry is left untouched
        """
        inputs = list(inputs)
        previous = self.load(source_dir)
        reason = self._staleness(previous, inputs)
        if reason is None:
            logger.info(f"Up to date: {source_dir}")
            return {Path(p) for p in previous.outputs}

        logger.info(f"Compiling {source_dir}: {reason}")
        stamps = self._stamp_all(inputs)
        result = action()

        written = {str(Path(p).resolve()) for p in result.written}
        if previous is not None:
            self._prune(set(previous.written) - written)

        outputs = sorted(str(p) for p in result.outputs if Path(p).exists())
        self.store(
            CacheEntry(
                source_dir=_dir_key(source_dir),
                strategy=self.strategy,
                inputs=stamps,
                outputs=outputs,
                written=sorted(written),
            )
        )
        return {Path(p) for p in outputs}

    def is_stale(self, source_dir: Path, inputs: Iterable[Path]) -> bool:
        """Whether compiling ``source_dir`` would invoke the compilers."""
        return self._staleness(self.load(source_dir), list(inputs)) is not None

    def _staleness(self, entry: Optional[CacheEntry], inputs: List[Path]) -> Optional[str]:
        """Describe why ``entry`` cannot be reused, or None if it can."""
        if entry is None:
            return "no previous build"
        if entry.strategy != self.strategy:
            return f"cache strategy changed to {self.strategy.value}"

        current = {_path_key(p): Path(p) for p in inputs}
        if set(current) != set(entry.inputs):
            return "input set changed"

        for key, path in current.items():
            try:
                stamp = file_stamp(path, self.strategy)
            except OSError:
                return f"cannot stamp {path}"
            recorded = entry.inputs[key]
            if self.strategy == CacheStrategy.HASH:
                if stamp != recorded:
                    return f"{path} changed"
            elif not isinstance(recorded, int) or stamp > recorded:
                return f"{path} modified"

        for output in entry.outputs:
            if not Path(output).exists():
                return f"output {output} missing"
        return None

    def _stamp_all(self, inputs: List[Path]) -> Dict[str, Stamp]:
        stamps = {}
        for path in inputs:
            try:
                stamps[_path_key(path)] = file_stamp(Path(path), self.strategy)
            except OSError as e:
                raise SchemaIOError(f"cannot stamp input: {e}", path=Path(path)) from e
        return stamps

    def _prune(self, stale: Set[str]) -> None:
        for name in sorted(stale):
            path = Path(name)
            if path.exists():
                path.unlink()
                logger.info(f"Removed stale generated source {path}")

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def entry_path(self, source_dir: Path) -> Path:
        digest = hashlib.sha256(_dir_key(source_dir).encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest[:16]}.json"

    def load(self, source_dir: Path) -> Optional[CacheEntry]:
        """Load the entry for ``source_dir``; unreadable entries count as missing."""
        path = self.entry_path(source_dir)
        if not path.exists():
            return None
        try:
            with open(path) as f:
                data = json.load(f)
            if data.get("version") != CACHE_VERSION:
                return None
            return CacheEntry.from_dict(data)
        except (OSError, ValueError, KeyError) as e:
            logger.warning(f"Ignoring unreadable cache entry {path}: {e}")
            return None

    def store(self, entry: CacheEntry) -> None:
        """Atomically replace the entry for ``entry.source_dir``."""
        path = self.entry_path(Path(entry.source_dir))
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", dir=self.cache_dir, suffix=".tmp", delete=False
            ) as tmp_file:
                json.dump(entry.to_dict(), tmp_file, indent=2, sort_keys=True)
                tmp_path = Path(tmp_file.name)
            os.replace(tmp_path, path)
        except OSError as e:
            raise SchemaIOError(f"cannot write cache entry: {e}", path=path) from e
        logger.debug(f"Stored cache entry {path}")

    def clear(self, source_dir: Optional[Path] = None) -> None:
        """Drop one directory's entry, or every entry."""
        if source_dir is not None:
            self.entry_path(source_dir).unlink(missing_ok=True)
            return
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
            logger.info(f"Removed cache {self.cache_dir}")


def _dir_key(source_dir: Path) -> str:
    return str(Path(source_dir).resolve())


def _path_key(path: Path) -> str:
    return str(Path(path).resolve())
