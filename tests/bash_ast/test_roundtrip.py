"""Round-trip tests: parse, serialize, parse again.

Canonical scripts must come back byte for byte; any other formatting must at
least re-parse to the same tree once line numbers are erased.
"""

from __future__ import annotations

import pytest

from bash_ast import deserialize, parse, parse_to_json, serialize
from bash_ast.schemas.ast import strip_lines

CANONICAL = [
    'echo hello world',
    'echo "quoted $var" \'single\'',
    'FOO=bar env',
    'export FOO=bar',
    'a && b || c',
    'a | b | c',
    '! a | b',
    'a; b; c',
    'a; b && c',
    'sleep 1 &',
    'a; b &',
    'a & b',
    '{ a; b; }',
    '(cd /tmp; ls)',
    '{ a & }',
    'for i in 1 2 3; do echo $i; done',
    'while true; do sleep 1; done',
    'while true; do sleep 1 & done',
    'until false; do retry; done',
    'if a; then b; fi',
    'if a; then b; elif c; then d; else e; fi',
    'greet() { echo hi; }',
    'echo hi > out.txt 2>&1',
    'echo err >&2',
    'sort < in.txt >> out.txt',
    'exec 3>&-',
    '{ a; b; } > out.txt',
    'cat <<EOF\nhello\nEOF',
    "cat <<'EOF'\n$HOME\nEOF",
    'cat <<"EOF"\n$HOME\nEOF',
    'cat <<\\EOF\n$HOME\nEOF',
    'cat <<EOF && echo done\nbody\nEOF',
    'cat <<EOF\nbody\nEOF\necho next',
]

REFORMATTED = [
    'a;b',
    'echo   spaced    out',
    'echo a\necho b\n',
    'if a\nthen\n  b\nfi',
    'for i in 1 2\ndo\n  echo $i\ndone',
    '{\n  a\n  b\n}',
    'f() {\n  echo one\n  echo two\n}',
    'a &&\n  b',
]


@pytest.mark.parametrize('script', CANONICAL)
def test_canonical_script_round_trips_exactly(script: str) -> None:
    assert serialize(parse(script)) == script


@pytest.mark.parametrize('script', CANONICAL + REFORMATTED)
def test_reparse_gives_same_tree(script: str) -> None:
    first = parse(script)
    second = parse(serialize(first))
    assert strip_lines(second) == strip_lines(first)


@pytest.mark.parametrize('script', CANONICAL)
def test_json_round_trip(script: str) -> None:
    command = parse(script)
    assert deserialize(parse_to_json(script)) == command
