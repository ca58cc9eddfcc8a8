"""CLI entrypoints for pbls commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

from .config import ConfigError, PblsConfig, load_config
from .logging import configure_logging
from .models import Diagnostic, Severity
from .workspace import Workspace


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_root_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=".",
        help="Workspace root containing .pbls.yml (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pbls",
        description="Analyse protobuf schema workspaces.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also write debug logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check",
        help="Report diagnostics for schema files.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    _add_root_option(check_parser)
    check_parser.add_argument("paths", nargs="+", help="Schema files to check.")
    check_parser.add_argument(
        "-I",
        "--proto-path",
        dest="proto_paths",
        action="append",
        default=[],
        help="Additional import search directory (repeatable).",
    )
    check_parser.add_argument(
        "--no-compiler",
        action="store_true",
        help="Skip the external compiler and report syntax and index diagnostics only.",
    )

    symbols_parser = subparsers.add_parser(
        "symbols",
        help="Search declared symbols across the workspace.",
    )
    _add_verbose_option(symbols_parser, suppress_default=True)
    _add_root_option(symbols_parser)
    symbols_parser.add_argument("query", nargs="?", default="", help="Fuzzy symbol query.")

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the JSON query service.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_root_option(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for pbls commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file = Path(args.log_file).expanduser() if args.log_file else None
    configure_logging(verbose=bool(args.verbose), log_file=log_file)

    root = Path(args.root).expanduser().resolve()
    try:
        config = load_config(root)
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    if args.command == "check":
        _run_check(parser, args, root, config)
    elif args.command == "symbols":
        workspace = Workspace(root, config)
        try:
            workspace.index_workspace()
            for symbol in workspace.workspace_symbols(args.query):
                position = symbol.selection_range.start if symbol.selection_range else None
                location = _relativize(symbol.path)
                if position is not None:
                    location = f"{location}:{position.line + 1}:{position.character + 1}"
                print(f"{symbol.kind.value:<10} {symbol.fqn}  {location}")
        finally:
            workspace.shutdown()
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port, root=root)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_check(
    parser: argparse.ArgumentParser,
    args: argparse.Namespace,
    root: Path,
    config: PblsConfig,
) -> None:
    if args.proto_paths:
        config.proto_paths = list(config.proto_paths or []) + list(args.proto_paths)
    if args.no_compiler:
        config.compiler.enabled = False

    workspace = Workspace(root, config)
    errors = 0
    try:
        diagnostics: List[Diagnostic] = []
        for raw in args.paths:
            path = Path(raw).expanduser().resolve()
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                parser.exit(1, f"pbls check failed: {exc}\n")
            workspace.open_document(path, text)
            diagnostics.extend(workspace.check(path))
        diagnostics.extend(workspace.workspace_diagnostics())
    finally:
        workspace.shutdown()

    for diagnostic in diagnostics:
        print(format_diagnostic(diagnostic))
        if diagnostic.severity is Severity.ERROR:
            errors += 1
    if errors:
        parser.exit(1, f"{errors} error(s) found\n")


def format_diagnostic(diagnostic: Diagnostic) -> str:
    """``path:line:col: severity: message`` with one-based line and column."""
    location = _relativize(diagnostic.path)
    if diagnostic.range is not None:
        start = diagnostic.range.start
        location = f"{location}:{start.line + 1}:{start.character + 1}"
    return f"{location}: {diagnostic.severity.value}: {diagnostic.message}"


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
