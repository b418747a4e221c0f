# File: relschema/cli.py
"""
RelSchema - Command-Line Interface
==================================

CLI built with the standard-library ``argparse`` module.

Usage examples::

    # Validate a schema and print the report
    relschema -s schema.yaml

    # Machine-readable output
    relschema -s schema.json --json

    # Extra scalar types and a custom prefix for synthesized relation names
    relschema -s schema.yaml --scalar Money --scalar Point --relation-prefix rel_

    # Debug logging of every parser pass and resolver phase
    python -m relschema -s schema.yaml -vv

Exit codes:
    0 - success
    1 - UserConfigError (schema violates a modelling rule)
    2 - ParsingError (annotation does not follow the directive grammar)
    3 - RegexError (pattern engine failure)
    4 - input/argument error (missing file, undecodable document)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, NoReturn, Optional, Sequence

from pydantic import ValidationError

from relschema.compiler import CompilationReport, SchemaCompiler
from relschema.errors import ErrorKind, SchemaError
from relschema.models import DEFAULT_SCALAR_TYPES, ResolverSettings

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("relschema")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_USER_CONFIG_ERROR: int = 1
EXIT_PARSING_ERROR: int = 2
EXIT_REGEX_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4

_EXIT_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.USER_CONFIG_ERROR: EXIT_USER_CONFIG_ERROR,
    ErrorKind.PARSING_ERROR: EXIT_PARSING_ERROR,
    ErrorKind.REGEX: EXIT_REGEX_ERROR,
}


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root relschema logger based on verbosity level.

    Args:
        verbosity: -1 = silent, 0 = WARNING, 1 = INFO, 2+ = DEBUG.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    elif verbosity == 0:
        level = logging.WARNING
    else:
        level = logging.CRITICAL + 1

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    fmt: str = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
    datefmt: str = "%H:%M:%S"
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root_logger: logging.Logger = logging.getLogger("relschema")
    root_logger.setLevel(level)

    # Remove existing handlers to prevent duplication
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    from relschema import __version__

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="relschema",
        description=(
            "RelSchema - relational schema-definition compiler.\n\n"
            "Parses member annotations of a JSON/YAML schema document, "
            "resolves relations between models and reports the many-to-many "
            "join tables they require."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s -s schema.yaml\n"
            "  %(prog)s -s schema.json --json\n"
            "  %(prog)s -s schema.yaml --scalar Money -vv\n"
        ),
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"RelSchema v{__version__}",
    )

    parser.add_argument(
        "-s", "--schema",
        type=str,
        required=True,
        metavar="PATH",
        help="Path to the schema document (JSON or YAML).",
    )

    output_group = parser.add_argument_group("output")
    output_group.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the report as JSON instead of the text summary.",
    )

    resolver_group = parser.add_argument_group("resolver")
    resolver_group.add_argument(
        "--scalar",
        action="append",
        default=[],
        metavar="NAME",
        help=(
            "Register an extra scalar type (repeatable). Built in: "
            + ", ".join(DEFAULT_SCALAR_TYPES)
        ),
    )
    resolver_group.add_argument(
        "--relation-prefix",
        type=str,
        default=None,
        metavar="PREFIX",
        help="Prefix of synthesized relation names (default: 'relation#').",
    )

    verbosity_group = parser.add_argument_group("verbosity")
    verbosity_group.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG).",
    )
    verbosity_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        default=False,
        help="Suppress all output except errors.",
    )

    return parser


def _build_settings(args: argparse.Namespace) -> ResolverSettings:
    """Build resolver settings from CLI arguments."""
    overrides: Dict[str, object] = {"extra_scalar_types": list(args.scalar)}
    if args.relation_prefix is not None:
        overrides["relation_name_prefix"] = args.relation_prefix
    return ResolverSettings(**overrides)


def exit_code_for(report: CompilationReport) -> int:
    """
    Map a finished report to the process exit code.

    The innermost ``SchemaError`` of the chain decides, so a parse failure
    wrapped with its model/member context still exits with the parsing code.
    """
    if report.success:
        return EXIT_SUCCESS
    if report.input_error is not None or report.error is None:
        return EXIT_INPUT_ERROR
    innermost: SchemaError = report.error
    for item in report.error.chain():
        if isinstance(item, SchemaError):
            innermost = item
    return _EXIT_BY_KIND.get(ErrorKind(innermost.kind), EXIT_USER_CONFIG_ERROR)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the CLI and return the exit code.

    Args:
        argv: Optional argument list (defaults to sys.argv[1:]).
    """
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    verbosity: int = -1 if args.quiet else args.verbose
    _setup_logging(verbosity)

    try:
        settings: ResolverSettings = _build_settings(args)
    except ValidationError as exc:
        print(f"Invalid resolver settings:\n{exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR

    schema_path: Path = Path(args.schema).resolve()
    logger.info("Schema:  %s", schema_path)

    report: CompilationReport = SchemaCompiler(settings).compile_file(schema_path)
    exit_code: int = exit_code_for(report)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    elif not args.quiet:
        print(report.summary())
    elif exit_code != EXIT_SUCCESS:
        print(report.input_error or str(report.error), file=sys.stderr)

    if exit_code == EXIT_SUCCESS:
        logger.info("Compilation completed successfully.")
    else:
        logger.info("Compilation failed with exit code %d.", exit_code)
    return exit_code


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Run the CLI and exit the process with its exit code."""
    sys.exit(main(argv))


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "main",
    "cli_main",
    "exit_code_for",
    "EXIT_SUCCESS",
    "EXIT_USER_CONFIG_ERROR",
    "EXIT_PARSING_ERROR",
    "EXIT_REGEX_ERROR",
    "EXIT_INPUT_ERROR",
]

logger.debug("relschema.cli loaded.")
