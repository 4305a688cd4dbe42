"""
headerify command line.

    headerify model.dae [--json [--euler] | --pose] [--skeleton-only] [-d] [-f]
    headerify font.fnt
    headerify strings.csv

The processor is picked from the input's extension.
"""

import argparse
import logging
import sys
from pathlib import Path

from headerify.config import load_settings
from headerify.processors import ConvertOptions, run_pipeline, supported_extensions

logger = logging.getLogger("headerify")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="headerify",
        description="Convert Collada scenes, BMFont descriptors and "
                    "localization CSVs into source files.",
    )
    parser.add_argument("input", help="input file (%s)" % ", ".join(supported_extensions()))
    parser.add_argument("-o", "--output-dir", default=".",
                        help="directory for generated files (default: current)")
    parser.add_argument("-d", "--debug", action="store_true",
                        help="also write a PNG showing UV texel usage")
    parser.add_argument("-f", "--force", action="store_true",
                        help="overwrite existing output instead of picking a new name")
    parser.add_argument("--skeleton-only", action="store_true",
                        help="export only skeleton and animation tables")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--json", action="store_true",
                      help="write the skeleton and animations as JSON")
    mode.add_argument("--pose", action="store_true",
                      help="write per-frame Euler angles of every bone as text")
    parser.add_argument("--euler", action="store_true",
                        help="JSON animations as Euler angles + translation (implies --json)")
    parser.add_argument("--hack-offset", action="store_true",
                        help="add the legacy angle offset to Euler output")
    parser.add_argument("--hack-axis", action="store_true",
                        help="apply the legacy axis correction to Euler output")
    parser.add_argument("--legacy-dedupe", action="store_true",
                        help="reproduce old vertex deduplication that ignored UVs")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="debug logging")
    return parser


def options_from_args(args: argparse.Namespace) -> ConvertOptions:
    return ConvertOptions(
        force=args.force,
        debug_image=args.debug,
        skeleton_only=args.skeleton_only,
        json=args.json or (args.euler and not args.pose),
        euler=args.euler,
        pose=args.pose,
        hack_offset=args.hack_offset,
        hack_axis=args.hack_axis,
        legacy_dedupe=args.legacy_dedupe,
    )


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    if not argv:
        parser.print_usage(sys.stdout)
        return 0
    args = parser.parse_args(argv)

    settings = load_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(message)s",
        stream=sys.stdout,
    )

    source = Path(args.input)
    if not source.is_file():
        print(f"{source} doesn't exist.")
        parser.print_usage(sys.stdout)
        return 0

    result = run_pipeline(source, Path(args.output_dir), options_from_args(args))
    if result is None:
        logger.error("No processor for %s (supported: %s)", source.name,
                     ", ".join(supported_extensions()))
        return 1
    return 1 if result.status == "error" else 0


if __name__ == "__main__":
    sys.exit(main())
