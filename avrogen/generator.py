"""
Generator facade.

AvroGenerator drives a whole build: for every configured source directory it
scans inputs, consults the incremental cache and, when stale, compiles the
directory. It also implements clean.

Invariants:
    - Each directory compilation takes its own registry snapshot; a
      directory never sees types contributed by a sibling in the same pass
    - clean() resets the global registry before removing any files

How to change safely:
    - Keep per-directory work independent so it can run in parallel
    - Never let two workers compile the same source directory
"""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Set

from .cache import IncrementalCache
from .compiler import CompilationResult, compile_source_dir, find_inputs, scan_source_dir
from .compiler.formats import SchemaFile, SchemaFormat
from .config import GeneratorSettings
from .schema.registry import reset_registry

logger = logging.getLogger(__name__)


class AvroGenerator:
    """Compiles every configured source directory into the output directory.

    Attributes:
        settings: Generator settings
        cache: Incremental cache shared by all source directories

    Example:
        >>> generator = AvroGenerator(GeneratorSettings(source_dirs=[Path("avro")]))
        >>> outputs = generator.generate()
        >>> generator.clean()
    """

    def __init__(self, settings: Optional[GeneratorSettings] = None) -> None:
        self.settings = settings or GeneratorSettings()
        self.cache = IncrementalCache(self.settings.cache_dir, self.settings.cache_strategy)

    @property
    def source_dirs(self) -> List[Path]:
        # Duplicates would race on the same cache entry
        return list(dict.fromkeys(Path(d) for d in self.settings.source_dirs))

    def generate(self) -> List[Path]:
        """Compile all source directories.

        Returns:
            Sorted generated source paths across all directories

        Raises:
            AvroGenError: If a fatal compilation error occurs
        """
        outputs: Set[Path] = set()
        source_dirs = self.source_dirs
        workers = min(self.settings.max_workers, len(source_dirs)) or 1

        if workers == 1:
            for source_dir in source_dirs:
                outputs |= self.compile_source_dir(source_dir)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="avrogen") as pool:
                for result in pool.map(self.compile_source_dir, source_dirs):
                    outputs |= result
        return sorted(outputs)

    def compile_source_dir(self, source_dir: Path) -> Set[Path]:
        """Compile one source directory through the cache."""
        options = self.settings.compile_options()
        output_dir = self.settings.output_dir

        def action() -> CompilationResult:
            return compile_source_dir(source_dir, output_dir, options)

        return self.cache.compile(source_dir, find_inputs(source_dir), action)

    def scan(self) -> Dict[Path, Dict[SchemaFormat, List[SchemaFile]]]:
        """Discovered inputs per source directory and format."""
        return {d: scan_source_dir(d) for d in self.source_dirs}

    def status(self) -> Dict[Path, bool]:
        """Whether each source directory is stale."""
        return {d: self.cache.is_stale(d, find_inputs(d)) for d in self.source_dirs}

    def clean(self) -> None:
        """Reset the type registry and remove generated output and cache."""
        reset_registry()
        output_dir = Path(self.settings.output_dir)
        if output_dir.exists():
            shutil.rmtree(output_dir)
            logger.info(f"Removed {output_dir}")
        self.cache.clear()
