"""
Command-line interface for extbuild.

This module provides the `extbuild` CLI tool for building native extension
modules incrementally.
"""

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from extbuild import __version__
from extbuild.build.build_context import BuildParams
from extbuild.build.manifest import BuildManifest
from extbuild.build.orchestrator import Orchestrator
from extbuild.errors import BuildActionError, ConfigurationError, ExtbuildError, PreflightError
from extbuild.output import TimedLogger, init_timer, log_build_complete, log_detail, log_error, log_header, set_verbose
from extbuild.progress_display import BuildProgressDisplay

DEFAULT_MANIFEST = "extbuild.json"


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    manifest: Path
    targets: List[str] = field(default_factory=list)
    output_dir: Optional[Path] = None
    optimize: Optional[bool] = None
    asan: Optional[bool] = None
    jobs: Optional[int] = None
    verbose: bool = False


@dataclass
class CleanArgs:
    """Arguments for the clean command."""

    manifest: Path
    output_dir: Optional[Path] = None
    verbose: bool = False


def build_command(args: BuildArgs) -> None:
    """Build the extension module (or the given targets).

    Examples:
        extbuild build                     # Build 'all'
        extbuild build mod_example.so      # Build one target
        extbuild build --optimize -j 4     # Optimized, four actions at once
        extbuild build --asan --verbose    # Sanitizer build, show reasons
    """
    log_header("extbuild", __version__)

    try:
        manifest = BuildManifest.load(args.manifest)
        params = BuildParams.create(
            output_dir=args.output_dir,
            optimize=args.optimize,
            sanitize=args.asan,
            jobs=args.jobs,
            verbose=args.verbose,
        )
        display = BuildProgressDisplay(verbose=args.verbose)
        orchestrator = Orchestrator(manifest, params, callback=display)

        start_time = time.time()
        report = orchestrator.run(args.targets or None)
        build_time = time.time() - start_time

        if args.verbose:
            display.print_summary()
        log_build_complete(build_time, report.executed_count)
        sys.exit(0)

    except PreflightError as e:
        log_error(str(e))
        sys.exit(1)

    except ConfigurationError as e:
        log_error(f"Invalid build configuration: {e}")
        sys.exit(1)

    except BuildActionError as e:
        log_error(f"Build failed at {e.target}")
        log_detail(str(e.cause), indent=2)
        sys.exit(1)

    except KeyboardInterrupt:
        log_error("Build interrupted")
        sys.exit(130)  # Standard exit code for SIGINT


def clean_command(args: CleanArgs) -> None:
    """Remove every output the build can produce.

    Examples:
        extbuild clean
        extbuild clean --output-dir /tmp/build
    """
    try:
        manifest = BuildManifest.load(args.manifest)
        params = BuildParams.create(output_dir=args.output_dir, verbose=args.verbose)
        orchestrator = Orchestrator(manifest, params)

        with TimedLogger("Cleaning") as timer:
            removed = orchestrator.clean()
            for path in removed:
                timer.detail(f"Removed {path}")
        log_detail(f"Removed {len(removed)} file(s)")
        sys.exit(0)

    except ExtbuildError as e:
        log_error(str(e))
        sys.exit(1)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-m",
        "--manifest",
        type=Path,
        default=Path(DEFAULT_MANIFEST),
        help=f"Build manifest (default: {DEFAULT_MANIFEST})",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=None,
        help="Output directory (default: from EXTBUILD_OUTPUT_DIR or the manifest)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show staleness reasons and debug output",
    )


def main(argv: Optional[List[str]] = None) -> None:
    """extbuild - incremental builds for native extension modules."""
    parser = argparse.ArgumentParser(
        prog="extbuild",
        description="extbuild - incremental builds for native extension modules",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"extbuild {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    build_parser = subparsers.add_parser(
        "build",
        help="Build the extension module",
    )
    build_parser.add_argument(
        "targets",
        nargs="*",
        help="Targets to build (default: all)",
    )
    _add_common_arguments(build_parser)
    build_parser.add_argument(
        "--optimize",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Compile and link with -O (default: from EXTBUILD_OPTIMIZE)",
    )
    build_parser.add_argument(
        "--asan",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Build with the address sanitizer (default: from EXTBUILD_ASAN)",
    )
    build_parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Number of actions to run at once (default: from EXTBUILD_JOBS or 1)",
    )

    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove build outputs",
    )
    _add_common_arguments(clean_parser)

    parsed_args = parser.parse_args(argv)

    if not parsed_args.command:
        parser.print_help()
        sys.exit(0)

    init_timer()
    set_verbose(parsed_args.verbose)
    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if parsed_args.command == "build":
        build_command(
            BuildArgs(
                manifest=parsed_args.manifest,
                targets=parsed_args.targets,
                output_dir=parsed_args.output_dir,
                optimize=parsed_args.optimize,
                asan=parsed_args.asan,
                jobs=parsed_args.jobs,
                verbose=parsed_args.verbose,
            )
        )
    elif parsed_args.command == "clean":
        clean_command(
            CleanArgs(
                manifest=parsed_args.manifest,
                output_dir=parsed_args.output_dir,
                verbose=parsed_args.verbose,
            )
        )


if __name__ == "__main__":
    main()
