"""
avrogen - Main entry point.

Runs one generation pass over the configured source directories.

Usage:
    python -m avrogen.main

Configuration is via AVROGEN_* environment variables.
See config.py for all available settings.

Invariants:
    - Exit status is 0 on success and 1 on a fatal compilation error
    - Isolated per-file schema errors are logged, not fatal

How to change safely:
    - Keep the log line format stable; build logs are grepped
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter

from .config import GeneratorSettings
from .errors import AvroGenError
from .generator import AvroGenerator

logger = logging.getLogger(__name__)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: GeneratorSettings) -> None:
    """Configure logging based on settings.

    Args:
        settings: Generator settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def main() -> None:
    """Entry point: generate from the environment."""
    settings = GeneratorSettings()
    setup_logging(settings)
    settings.log_config()

    try:
        outputs = AvroGenerator(settings).generate()
    except AvroGenError as e:
        logger.error(f"Generation failed: {e}")
        sys.exit(1)
    logger.info(f"Generated {len(outputs)} source file(s)")


if __name__ == "__main__":
    main()
