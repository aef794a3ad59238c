#!/usr/bin/env python3
"""ncsl/__main__.py - command line entry point.

Usage examples
--------------
    # Check NotNull contracts in one or more files
    ncsl check service.ncsl model.ncsl

    # Same, one JSON object per line
    ncsl check service.ncsl --format json

    # Coloured output even when piped
    ncsl check service.ncsl --color always

    # Dump the flow tree of every member (or just one)
    ncsl tree service.ncsl --member Service.Run

    # Only validate the syntax
    ncsl parse service.ncsl

Exit codes
----------
    0   No diagnostics.
    1   One or more diagnostics were reported.
    2   Usage error, unreadable file or syntax error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence, TextIO

from termcolor import colored

from nullcontracts import __version__
from nullcontracts.checker import Diagnostic
from nullcontracts.config import AnalysisConfig
from nullcontracts.errors import ParseFailedError
from ncsl.binder import Binder
from ncsl.driver import analyze_member, check_file, iter_bodies, new_cache
from ncsl.parser import NcslSyntaxError, parse_file

_log = logging.getLogger("ncsl")

EXIT_OK: int = 0
EXIT_DIAGNOSTICS: int = 1
EXIT_USAGE: int = 2


def _configure_logging(verbosity: int) -> None:
    """0 → WARNING, 1 → INFO, 2+ → DEBUG, for both packages."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name("ncsl-cli")
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    for name in ("ncsl", "nullcontracts"):
        root = logging.getLogger(name)
        root.setLevel(level)
        # Repeated main() calls in one process replace the handler.
        for old in [h for h in root.handlers if h.get_name() == "ncsl-cli"]:
            root.removeHandler(old)
        root.addHandler(handler)


def _config_from_args(args: argparse.Namespace) -> AnalysisConfig:
    return AnalysisConfig.from_mapping({
        "allowlist_path": getattr(args, "allowlist", None),
        "cache_retention_seconds": getattr(args, "retention", None),
        "constraint_methods": getattr(args, "constraint_method", None),
    })


def _colored_line(diag: Diagnostic, force: bool) -> str:
    force_color = True if force else None
    severity = colored(diag.severity.value, diag.severity.color,
                       attrs=["bold"], force_color=force_color)
    error_id = colored(diag.error_id, attrs=["dark"], force_color=force_color)
    return f"{diag.location}: {severity}: {diag.message} [{error_id}]"


def _emit_diagnostics(diagnostics: List[Diagnostic], fmt: str, color: str,
                      stream: TextIO) -> None:
    for diag in diagnostics:
        if fmt == "json":
            stream.write(diag.to_json_str() + "\n")
        elif color == "never":
            stream.write(diag.to_gcc_format() + "\n")
        else:
            # "auto" leaves the tty and NO_COLOR checks to termcolor.
            stream.write(_colored_line(diag, color == "always") + "\n")


# ===========================================================================
# Sub-commands
# ===========================================================================

def cmd_check(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    cache = new_cache(config)
    found = 0
    status = EXIT_OK
    for raw in args.files:
        try:
            diagnostics = check_file(raw, config, cache)
        except OSError as exc:
            _log.error("cannot read %s: %s", raw, exc)
            status = EXIT_USAGE
            continue
        except NcslSyntaxError as exc:
            sys.stderr.write(f"{exc}\n")
            status = EXIT_USAGE
            continue
        _emit_diagnostics(diagnostics, args.format, args.color, sys.stdout)
        found += len(diagnostics)
    _log.info("%d diagnostic(s) in %d file(s)", found, len(args.files))
    if status != EXIT_OK:
        return status
    return EXIT_DIAGNOSTICS if found else EXIT_OK


def cmd_tree(args: argparse.Namespace) -> int:
    config = _config_from_args(args)
    try:
        unit = parse_file(args.file)
    except OSError as exc:
        _log.error("cannot read %s: %s", args.file, exc)
        return EXIT_USAGE
    except NcslSyntaxError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_USAGE
    model = Binder(unit, config)
    shown = 0
    status = EXIT_OK
    for name, member, body in iter_bodies(unit):
        if args.member and args.member not in (name, name.split(".", 1)[1]):
            continue
        shown += 1
        try:
            facts = analyze_member(model, member, body, config)
        except ParseFailedError as exc:
            sys.stderr.write(f"{name}: {exc}\n")
            status = EXIT_USAGE
            continue
        _log.info("%s: %d branch(es)", name, sum(1 for _ in facts.iter_branches()))
        sys.stdout.write(f"{name}:\n{facts.tree.dump(1)}\n")
        for index, closure in enumerate(facts.detached_lambda_trees):
            sys.stdout.write(f"  closure #{index}:\n{closure.dump(2)}\n")
    if args.member and not shown:
        _log.error("no member named %s in %s", args.member, args.file)
        return EXIT_USAGE
    return status


def cmd_parse(args: argparse.Namespace) -> int:
    try:
        unit = parse_file(args.file)
    except OSError as exc:
        _log.error("cannot read %s: %s", args.file, exc)
        return EXIT_USAGE
    except NcslSyntaxError as exc:
        sys.stderr.write(f"{exc}\n")
        return EXIT_USAGE
    members = sum(len(t.members) for t in unit.types)
    sys.stdout.write(f"{args.file}: {len(unit.types)} type(s), {members} member(s)\n")
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ncsl",
        description="Flow-sensitive NotNull contract checking for NCSL sources.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )
    subparsers = parser.add_subparsers(dest="command", title="commands", metavar="<command>")

    def _add_config_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--allowlist", metavar="PATH",
                       help="File of extra known-non-null Type.Member entries.")
        p.add_argument("--constraint-method", action="append", metavar="NAME",
                       help="Method treated as a NotNull constraint (repeatable).")
        p.add_argument("--retention", type=float, metavar="SECONDS",
                       help="How long cached analyses are kept.")

    p_check = subparsers.add_parser("check", help="Report contract violations.")
    p_check.add_argument("files", nargs="+", metavar="FILE")
    p_check.add_argument("--format", choices=("text", "json"), default="text")
    p_check.add_argument("--color", choices=("auto", "always", "never"), default="auto",
                         help="Colour text output (default: when writing to a terminal).")
    _add_config_args(p_check)
    p_check.set_defaults(func=cmd_check)

    p_tree = subparsers.add_parser("tree", help="Dump flow trees.")
    p_tree.add_argument("file", metavar="FILE")
    p_tree.add_argument("--member", metavar="NAME",
                        help="Only this member (Name or Type.Name).")
    _add_config_args(p_tree)
    p_tree.set_defaults(func=cmd_tree)

    p_parse = subparsers.add_parser("parse", help="Validate syntax only.")
    p_parse.add_argument("file", metavar="FILE")
    p_parse.set_defaults(func=cmd_parse)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return its exit code."""
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_USAGE

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
