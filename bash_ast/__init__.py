"""Structured access to shell scripts.

Parse a script into an immutable, JSON-serializable AST, and turn an AST back
into equivalent shell source::

    from bash_ast import parse, serialize

    command = parse('for f in *.txt; do wc -l "$f"; done')
    assert serialize(command) == 'for f in *.txt; do wc -l "$f"; done'
"""

from __future__ import annotations

from bash_ast.errors import (
    BashAstError,
    ConversionError,
    EmptyInputError,
    InputTooLargeError,
    InterchangeError,
    NulByteError,
    ShellSyntaxError,
)
from bash_ast.normalizer import normalize
from bash_ast.parser import (
    BashParser,
    default_parser,
    deserialize,
    parse,
    parse_to_json,
    schema_json,
    serialize,
)
from bash_ast.schemas.ast import Command

__all__ = [
    'BashAstError',
    'BashParser',
    'Command',
    'ConversionError',
    'EmptyInputError',
    'InputTooLargeError',
    'InterchangeError',
    'NulByteError',
    'ShellSyntaxError',
    'default_parser',
    'deserialize',
    'normalize',
    'parse',
    'parse_to_json',
    'schema_json',
    'serialize',
]
