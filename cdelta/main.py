#!/usr/bin/env python3
"""cdelta/main.py — CLI entry-point for the expression-detector pass.

Usage examples
--------------
    # Instrument the 3rd candidate expression, print-value mode
    cdelta-expr test.c --counter 3 -o test.out.c

    # Abort unless the 3rd candidate evaluates to 42, on its 2nd evaluation
    cdelta-expr test.c --counter 3 --check-reference 42 --fire-instance 2

    # Replace the 5th candidate with a literal
    cdelta-expr test.c --counter 5 --replacement 0

    # How many candidates are there?
    cdelta-expr test.c --query-instances

Exit codes
----------
    0   Success (or instance query answered).
    1   Transformation error (rewritten program does not parse, internal
        error).
    2   Infrastructure failure (missing file, bad arguments).
    3   Requested instance exceeds the number of valid candidates.

The module doubles as ``python -m cdelta`` via the companion
``cdelta/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import BinaryIO, Optional, Sequence

from termcolor import colored

from cdelta import __version__
from cdelta.config import DetectorConfig
from cdelta.detector import ExpressionDetector, TransformResult
from cdelta.errors import (
    CdeltaError,
    ConfigError,
    TransformStatus,
)

_log = logging.getLogger("cdelta")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_MAX_INSTANCE: int = 3

_STATUS_EXIT = {
    TransformStatus.SUCCESS: EXIT_OK,
    TransformStatus.QUERY: EXIT_OK,
    TransformStatus.MAX_INSTANCE: EXIT_MAX_INSTANCE,
    TransformStatus.FRONTEND_ERROR: EXIT_ERROR,
}


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``cdelta`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("cdelta")
    root.setLevel(level)
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.is_file():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> BinaryIO:
    """Return a writable binary stream.

    *dest* ``None`` or ``"-"`` → the buffer under ``sys.stdout``;
    otherwise open the path for writing (creating parent directories as
    needed).  The program is written as bytes so that source bytes which
    are not UTF-8 reach the output unchanged.
    """
    if dest is None or dest == "-":
        sys.stdout.flush()
        return sys.stdout.buffer
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "wb")


def _error(message: str) -> None:
    prefix = colored("Error:", "red", attrs=["bold"])
    sys.stderr.write(f"{prefix} {message}\n")


def _config_from_args(args: argparse.Namespace) -> DetectorConfig:
    return DetectorConfig(
        counter=args.counter,
        check_reference=args.check_reference,
        replacement=args.replacement,
        fire_instance=args.fire_instance,
        query_only=args.query_instances,
        language=args.language,
    )


def _report(result: TransformResult, args: argparse.Namespace) -> int:
    if args.list_candidates:
        for record in result.candidates:
            ordinal = colored(f"#{record.ordinal}", "cyan", attrs=["bold"])
            location = colored(f"{record.function}:{record.line}", "blue")
            sys.stdout.write(f"{ordinal} {location}: {record.expression}\n")

    if result.status == TransformStatus.QUERY:
        sys.stdout.write(f"Available transformation instances: {result.instance_count}\n")
        return EXIT_OK

    if result.status != TransformStatus.SUCCESS:
        _error(result.message)
        return _STATUS_EXIT[result.status]

    assert result.output is not None
    out = _open_output(args.output)
    try:
        out.write(result.output)
    finally:
        if out is sys.stdout.buffer:
            out.flush()
        else:
            out.close()
    _log.info("%s", result.message)
    return EXIT_OK


# ===========================================================================
# Argument parsing
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="cdelta-expr",
        description=(
            "Expression-detector pass of the cdelta test-case reducer.\n\n"
            "Captures the value of the N-th scalar expression of a C program\n"
            "in a temporary and prints it once, or aborts if it differs from\n"
            "a reference value."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              cdelta-expr test.c --counter 3
              cdelta-expr test.c --counter 3 --check-reference 42
              cdelta-expr test.c --query-instances
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument("input", metavar="INPUT", help="C source file to transform.")
    parser.add_argument(
        "--counter", type=int, default=1, metavar="N",
        help="1-based instance number of the expression to instrument (default: 1).",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--check-reference", metavar="VALUE", default=None,
        help="Abort when the captured value differs from VALUE instead of printing it.",
    )
    mode.add_argument(
        "--replacement", metavar="TEXT", default=None,
        help="Replace the selected expression with TEXT and emit nothing else.",
    )
    parser.add_argument(
        "--fire-instance", type=int, default=None, metavar="N",
        help="Fire on the N-th evaluation (default: the __CDELTA_INSTANCE_NUMBER macro).",
    )
    parser.add_argument(
        "--query-instances", action="store_true",
        help="Only report the number of valid instances.",
    )
    parser.add_argument(
        "--list-candidates", action="store_true",
        help="List every valid instance with its location.",
    )
    parser.add_argument(
        "--language", choices=("c", "c++"), default=None,
        help="Source dialect (default: inferred from the file suffix).",
    )
    parser.add_argument(
        "-o", "--output", metavar="OUTPUT", default=None,
        help="Write the transformed program to OUTPUT (default: stdout).",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )
    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the cdelta-expr CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return EXIT_OK if exc.code == 0 else EXIT_INFRA

    _configure_logging(args.verbose)

    try:
        path = _resolve_path(args.input, "input file")
        detector = ExpressionDetector(_config_from_args(args))
        result = detector.run(path.read_bytes(), str(path))
        return _report(result, args)
    except ConfigError as exc:
        _error(exc.message)
        for problem in exc.problems:
            sys.stderr.write(f"  {problem}\n")
        return EXIT_INFRA
    except CdeltaError as exc:
        _error(str(exc))
        return EXIT_ERROR
    except OSError as exc:
        _error(str(exc))
        return EXIT_INFRA
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130  # Standard UNIX convention for SIGINT
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA


# ---------------------------------------------------------------------------
# Module execution support
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    raise SystemExit(main())
