"""``bash-ast`` command: shell script to JSON AST, and back.

    bash-ast script.sh              # pretty JSON AST
    bash-ast --compact - < script   # single-line JSON from stdin
    bash-ast --to-bash ast.json     # JSON AST back to shell
    bash-ast --schema               # JSON Schema of the AST
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from bash_ast.error_boundary import ErrorBoundary
from bash_ast.errors import BashAstError
from bash_ast.parser import BashParser, deserialize, schema_json, serialize
from bash_ast.schemas.ast import command_to_json
from bash_ast.schemas.config import load_config

__all__ = [
    'main',
]

logger = logging.getLogger(__name__)

boundary = ErrorBoundary(exit_code=1)


@boundary.handler(BashAstError)
def _report_bash_ast_error(exc: BashAstError) -> None:
    print(f'bash-ast: {exc}', file=sys.stderr)


@boundary.handler(ValueError)
def _report_config_error(exc: ValueError) -> None:
    print(f'bash-ast: {exc}', file=sys.stderr)


@boundary.handler(OSError)
def _report_io_error(exc: OSError) -> None:
    print(f'bash-ast: {exc}', file=sys.stderr)


def _build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='bash-ast', description='Parse shell scripts into a JSON AST.')
    parser.add_argument('file', nargs='?', default='-', help="script (or JSON AST with --to-bash); '-' for stdin")
    parser.add_argument('--compact', action='store_true', help='single-line JSON output')
    parser.add_argument('--to-bash', action='store_true', help='read a JSON AST and print it as shell source')
    parser.add_argument('--schema', action='store_true', help='print the JSON Schema of the AST and exit')
    parser.add_argument('--config', type=Path, help='JSON file with parser limits')
    parser.add_argument('-v', '--verbose', action='store_true', help='log at DEBUG level to stderr')
    return parser


def _read_input(file: str) -> str:
    if file == '-':
        return sys.stdin.read()
    return Path(file).read_text()


@boundary
def main(argv: Sequence[str] | None = None) -> None:
    args = _build_argument_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    if args.schema:
        print(schema_json(pretty=not args.compact))
        return

    text = _read_input(args.file)

    if args.to_bash:
        print(serialize(deserialize(text)))
        return

    config = load_config(args.config) if args.config else None
    command = BashParser(config).parse(text)
    logger.debug(f'parsed {args.file} into a {command.type} node')
    print(command_to_json(command, pretty=not args.compact))


if __name__ == '__main__':
    main()
