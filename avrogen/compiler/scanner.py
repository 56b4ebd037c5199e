"""
Source directory scanner.

Discovers Avro sources and generated outputs by extension, recursively.
Scanning is pure: it reads directory listings and nothing else.

Invariants:
    - Results are deterministic for a given file-system state
      (directories and file names are walked in sorted order)
    - An unreadable subdirectory contributes nothing; it never aborts a scan
    - A missing root yields an empty result
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List

from ..codegen import OUTPUT_EXTENSION
from .formats import COMPILE_ORDER, SchemaFile, SchemaFormat

logger = logging.getLogger(__name__)


def _skip_unreadable(error: OSError) -> None:
    logger.debug(f"Skipping unreadable directory: {error}")


def find_files(root: Path, *extensions: str) -> List[Path]:
    """Recursively find files under ``root`` whose suffix is one of ``extensions``."""
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_skip_unreadable):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.suffix in extensions:
                found.append(path)
    return found


def scan_source_dir(root: Path) -> Dict[SchemaFormat, List[SchemaFile]]:
    """Discover sources under ``root``, grouped by format in compile order."""
    found: Dict[SchemaFormat, List[SchemaFile]] = {fmt: [] for fmt in COMPILE_ORDER}
    for path in find_files(root, *(fmt.extension for fmt in COMPILE_ORDER)):
        source = SchemaFile.from_path(path)
        found[source.format].append(source)
    return found


def find_inputs(root: Path) -> List[Path]:
    """All Avro sources under ``root``: the input set the cache tracks."""
    inputs: List[Path] = []
    for files in scan_source_dir(root).values():
        inputs.extend(f.path for f in files)
    return inputs


def find_outputs(target: Path) -> List[Path]:
    """All generated sources currently under the destination tree."""
    return find_files(target, OUTPUT_EXTENSION)
