"""Command-line interface for rendering graphs through registered shapes."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .builtins import create_default_registry
from .errors import MarkupError, ShapekitError
from .render import render_graph
from .resources import load_reference
from .shape import ShapeRegistry

LOG = logging.getLogger(__name__)

FAMILIES = ("node", "edge", "combo")
SUBCOMMANDS_HINT = "Use one of: render, types, reference."


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="shapekit",
        description="Render graph JSON to SVG through registered node, edge and combo types.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")

    subparsers = parser.add_subparsers(dest="command")

    render_parser = subparsers.add_parser("render", help="Render graph JSON to SVG")
    render_parser.add_argument("input", nargs="?", help="Input .json file")
    render_parser.add_argument("--text", help="Raw graph JSON")
    render_parser.add_argument("--stdout", action="store_true", help="Write SVG to stdout")
    render_parser.add_argument("-o", "--output", help="Output .svg path")
    render_parser.add_argument("--padding", type=float, default=20.0)
    render_parser.add_argument(
        "--define",
        action="append",
        default=[],
        metavar="NAME=FILE",
        help="Register a node type from a markup file (repeatable)",
    )

    types_parser = subparsers.add_parser("types", help="List registered shape types")
    types_parser.add_argument("--family", choices=FAMILIES, help="Only list one family")
    types_parser.add_argument(
        "--define",
        action="append",
        default=[],
        metavar="NAME=FILE",
        help="Register a node type from a markup file before listing",
    )

    subparsers.add_parser("reference", help="Print graph JSON and node markup reference")

    return parser


def _read_input(path: Optional[str], text: Optional[str]) -> tuple[str, str, Optional[Path]]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )

    if text is not None:
        return text, "<text>", None

    if path:
        input_path = Path(path)
        if not input_path.exists():
            raise CliError(
                "E_IO_READ",
                f"input file not found: {input_path}",
                exit_code=2,
                file=str(input_path),
            )
        try:
            return input_path.read_text(), str(input_path), input_path
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read input file: {input_path}",
                hint=str(exc),
                exit_code=2,
                file=str(input_path),
            )

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use render with FILE, --text, or pipe stdin.",
            exit_code=2,
        )

    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_ARGS",
            "stdin was empty",
            hint="Pipe graph JSON into stdin.",
            exit_code=2,
        )
    return data, "<stdin>", None


def _parse_graph(source: str, source_name: str) -> Dict[str, Any]:
    try:
        data = json.loads(source)
    except json.JSONDecodeError as exc:
        raise CliError(
            "E_PARSE_JSON",
            f"failed to parse graph JSON: {exc.msg}",
            hint="Ensure input is a JSON object with nodes, edges and combos arrays.",
            exit_code=2,
            file=source_name,
            line=exc.lineno,
            column=exc.colno,
        )
    if not isinstance(data, dict):
        raise CliError(
            "E_GRAPH_DATA",
            f"graph JSON must be an object, got {type(data).__name__}",
            hint='Wrap items as {"nodes": [...], "edges": [...]}.',
            exit_code=3,
            file=source_name,
        )
    return data


def _apply_definitions(registry: ShapeRegistry, defines: List[str]) -> None:
    for define in defines:
        name, sep, raw_path = define.partition("=")
        if not sep or not name or not raw_path:
            raise CliError(
                "E_ARGS",
                f"invalid --define value: {define!r}",
                hint="Use --define NAME=path/to/markup.xml.",
                exit_code=2,
            )
        path = Path(raw_path)
        try:
            markup = path.read_text()
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read markup file: {path}",
                hint=str(exc),
                exit_code=2,
                file=str(path),
            )
        try:
            registry.register_node(name, markup)
        except MarkupError as exc:
            raise CliError(
                exc.code,
                f"{path}: {exc.message}",
                hint="Check the node markup; see `shapekit reference`.",
                exit_code=3,
                file=str(path),
                line=exc.line,
                column=exc.column,
            )
        LOG.debug("Registered markup node %r from %s", name, path)


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content)
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, ShapekitError):
        return CliError(
            exc.code,
            exc.message,
            hint="Check graph data and shape definitions.",
            exit_code=3,
            retryable=True,
        )
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "line": err.line,
            "column": err.column,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _handle_render(args: argparse.Namespace) -> int:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )
    if args.padding < 0:
        raise CliError(
            "E_ARGS",
            "--padding must be >= 0",
            exit_code=2,
        )

    source, source_name, source_path = _read_input(args.input, args.text)
    graph = _parse_graph(source, source_name)
    registry = create_default_registry()
    _apply_definitions(registry, args.define)
    svg_text = render_graph(graph, registry, padding=args.padding)

    if args.stdout or source_path is None:
        sys.stdout.write(svg_text)
        if not svg_text.endswith("\n"):
            sys.stdout.write("\n")
        return 0

    output_path = Path(args.output) if args.output else source_path.with_suffix(".svg")
    _write_text(output_path, svg_text)
    print(f"Wrote {output_path}")
    return 0


def _handle_types(args: argparse.Namespace) -> int:
    registry = create_default_registry()
    _apply_definitions(registry, args.define)
    families = [args.family] if args.family else list(FAMILIES)
    for family in families:
        factory = registry.get_factory(family)
        if factory is None:
            continue
        print(f"{family} (default: {factory.default_shape_type})")
        for shape_type in factory.shape_types():
            print(f"  {shape_type}")
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint=SUBCOMMANDS_HINT,
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("SHAPEKIT_DEBUG") == "1"
    if debug_enabled:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format

        if args.command == "render":
            return _handle_render(args)
        if args.command == "types":
            return _handle_types(args)
        if args.command == "reference":
            print(load_reference())
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint=SUBCOMMANDS_HINT,
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint=SUBCOMMANDS_HINT,
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
