"""
Command line interface for avrogen.

Commands:
- generate: Compile Avro sources, printing the generated files
- clean: Reset the type registry and remove generated output and cache
- scan: List discovered Avro sources per format
- status: Report which source directories need recompiling

Usage:
    avrogen generate --source-dir src/main/avro --output-dir build/generated
    avrogen generate --config avrogen.yaml --string-type String
    avrogen status --format json
    avrogen clean

Invariants:
    - Fatal compilation errors exit with status 1
    - Generated paths go to stdout, logs go to stderr
    - Flags override the YAML file, which overrides the environment

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import CacheStrategy, GeneratorSettings
from ..errors import AvroGenError
from ..generator import AvroGenerator
from ..main import setup_logging

logger = logging.getLogger(__name__)


class AvroGenCLI:
    """CLI tool wrapping an AvroGenerator.

    Example:
        >>> cli = AvroGenCLI(AvroGenerator(settings))
        >>> cli.generate()  # Returns list of generated paths
    """

    def __init__(self, generator: AvroGenerator) -> None:
        self.generator = generator

    def generate(self) -> List[str]:
        return [str(p) for p in self.generator.generate()]

    def clean(self) -> None:
        self.generator.clean()

    def scan(self) -> Dict[str, Dict[str, List[str]]]:
        """Discovered inputs, keyed by source directory then format name."""
        return {
            str(source_dir): {
                fmt.name.lower(): [str(f.path) for f in files] for fmt, files in found.items()
            }
            for source_dir, found in self.generator.scan().items()
        }

    def status(self) -> Dict[str, str]:
        return {
            str(source_dir): "stale" if stale else "up-to-date"
            for source_dir, stale in self.generator.status().items()
        }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Incremental Avro source generator")
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", "-c", type=Path, help="YAML project file")
    common.add_argument(
        "--source-dir",
        dest="source_dirs",
        action="append",
        type=Path,
        help="Avro source directory (repeatable)",
    )
    common.add_argument("--output-dir", type=Path, help="Destination for generated sources")
    common.add_argument("--cache-dir", type=Path, help="Incremental cache directory")
    common.add_argument(
        "--string-type", choices=["CharSequence", "String", "Utf8"], help="String representation"
    )
    common.add_argument(
        "--field-visibility",
        help="Field visibility: private, public or public_deprecated",
    )
    common.add_argument(
        "--disable-decimal",
        action="store_true",
        help="Map decimal logical types to bytes instead of decimal.Decimal",
    )
    common.add_argument(
        "--use-namespace",
        action="store_true",
        help="Require schema file paths to mirror their namespace",
    )
    common.add_argument(
        "--cache-strategy",
        choices=[s.value for s in CacheStrategy],
        help="How input files are stamped",
    )
    common.add_argument("--workers", type=int, help="Source directories compiled in parallel")
    common.add_argument(
        "--format", choices=["text", "json"], default="text", help="Output format"
    )

    subparsers.add_parser("generate", parents=[common], help="Compile Avro sources")
    subparsers.add_parser("clean", parents=[common], help="Remove generated output and cache")
    subparsers.add_parser("scan", parents=[common], help="List discovered Avro sources")
    subparsers.add_parser("status", parents=[common], help="Report stale source directories")
    return parser


def load_settings(args: argparse.Namespace) -> GeneratorSettings:
    """Build settings from parsed arguments."""
    overrides: Dict[str, Any] = {
        "source_dirs": args.source_dirs,
        "output_dir": args.output_dir,
        "cache_dir": args.cache_dir,
        "string_type": args.string_type,
        "field_visibility": args.field_visibility,
        "cache_strategy": args.cache_strategy,
        "max_workers": args.workers,
    }
    if args.disable_decimal:
        overrides["enable_decimal_logical_type"] = False
    if args.use_namespace:
        overrides["use_namespace"] = True

    if args.config:
        return GeneratorSettings.from_yaml(args.config, **overrides)
    return GeneratorSettings(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for avrogen."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args)
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(settings)
    cli = AvroGenCLI(AvroGenerator(settings))

    try:
        if args.command == "generate":
            generated = cli.generate()
            if args.format == "json":
                print(json.dumps(generated, indent=2))
            else:
                for path in generated:
                    print(path)

        elif args.command == "clean":
            cli.clean()
            print(f"Removed {settings.output_dir} and {settings.cache_dir}")

        elif args.command == "scan":
            found = cli.scan()
            if args.format == "json":
                print(json.dumps(found, indent=2))
            else:
                for source_dir, formats in found.items():
                    print(f"{source_dir}:")
                    for fmt, paths in formats.items():
                        print(f"  {fmt}: {len(paths)} file(s)")
                        for path in paths:
                            print(f"    {path}")

        elif args.command == "status":
            status = cli.status()
            if args.format == "json":
                print(json.dumps(status, indent=2))
            else:
                for source_dir, state in status.items():
                    print(f"  [{state}] {source_dir}")

    except AvroGenError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
