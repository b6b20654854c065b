"""Tests for the parsing façade -- validation, error mapping and concurrency.

The ShellParser is swapped for fakes where a test needs a tree bashlex would
never produce (too deep, malformed) or needs to observe how it is called.
"""

from __future__ import annotations

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pydantic
import pytest

from bash_ast import (
    BashAstError,
    BashParser,
    ConversionError,
    EmptyInputError,
    InputTooLargeError,
    InterchangeError,
    NulByteError,
    ShellSyntaxError,
    default_parser,
    deserialize,
    parse,
    parse_to_json,
    schema_json,
    serialize,
)
from bash_ast.foreign import ForeignCommand
from bash_ast.schemas.ast import CommandList, SimpleCommand, Word
from bash_ast.schemas.config import ParserConfig
from tests.bash_ast import foreign_builders as fb


class FakeShellParser:
    """Returns a canned tree and records every script it was asked to parse."""

    def __init__(self, tree: object) -> None:
        self.tree = tree
        self.scripts: list[str] = []

    def parse(self, script: str) -> ForeignCommand:
        self.scripts.append(script)
        return self.tree  # type: ignore[return-value]


class OverlapDetectingShellParser:
    """Records the highest number of parse calls that were in flight at once."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._active = 0
        self.max_active = 0

    def parse(self, script: str) -> ForeignCommand:
        with self._guard:
            self._active += 1
            self.max_active = max(self.max_active, self._active)
        time.sleep(0.001)
        with self._guard:
            self._active -= 1
        return fb.simple(*script.split())


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class TestInputValidation:
    """Verify scripts are rejected before the ShellParser sees them."""

    @pytest.mark.parametrize('script', ['', '   ', '\n\t\n'])
    def test_empty(self, script: str) -> None:
        fake = FakeShellParser(fb.simple('x'))
        with pytest.raises(EmptyInputError):
            BashParser(shell_parser=fake).parse(script)
        assert fake.scripts == []

    def test_nul_byte(self) -> None:
        fake = FakeShellParser(fb.simple('x'))
        with pytest.raises(NulByteError):
            BashParser(shell_parser=fake).parse('echo a\x00b')
        assert fake.scripts == []

    def test_too_large(self) -> None:
        parser = BashParser(ParserConfig(max_script_size=8))
        with pytest.raises(InputTooLargeError) as exc_info:
            parser.parse('echo 123456789')
        assert exc_info.value.size == 14
        assert exc_info.value.limit == 8

    def test_size_counts_utf8_bytes(self) -> None:
        parser = BashParser(ParserConfig(max_script_size=8))
        with pytest.raises(InputTooLargeError):
            parser.parse('echo éé')  # 7 characters, 9 bytes

    def test_size_checked_before_emptiness(self) -> None:
        parser = BashParser(ParserConfig(max_script_size=4))
        with pytest.raises(InputTooLargeError):
            parser.parse(' ' * 10)

    def test_exactly_at_limit_accepted(self) -> None:
        parser = BashParser(ParserConfig(max_script_size=7))
        assert parser.parse('echo hi') == SimpleCommand(line=1, words=[Word(word='echo'), Word(word='hi')])

    def test_errors_share_base_class(self) -> None:
        with pytest.raises(BashAstError):
            parse('')


# ---------------------------------------------------------------------------
# ShellParser and conversion failures
# ---------------------------------------------------------------------------


class TestFailures:
    """Verify ShellParser and normalizer failures map to package errors."""

    def test_syntax_error(self) -> None:
        with pytest.raises(ShellSyntaxError) as exc_info:
            parse('((')
        assert str(exc_info.value).startswith('Syntax error in script')

    def test_unimplemented_construct(self) -> None:
        with pytest.raises(ShellSyntaxError) as exc_info:
            parse('echo $((1+2))')
        assert isinstance(exc_info.value.__cause__, NotImplementedError)
        assert exc_info.value.diagnostic == 'arithmetic expansion'

    def test_unsupported_construct(self) -> None:
        with pytest.raises(ShellSyntaxError):
            parse('case $x in a) echo a;; esac')

    def test_malformed_tree(self) -> None:
        parser = BashParser(shell_parser=FakeShellParser(ForeignCommand(kind=99, value=None)))
        with pytest.raises(ConversionError):
            parser.parse('anything')

    def test_too_deep_tree(self) -> None:
        parser = BashParser(shell_parser=FakeShellParser(fb.nested_groups(10_000)))
        with pytest.raises(ConversionError):
            parser.parse('anything')

    def test_configured_depth_applies(self) -> None:
        tree = fb.nested_groups(3)
        assert BashParser(ParserConfig(max_depth=3), FakeShellParser(tree)).parse('x') is not None
        with pytest.raises(ConversionError):
            BashParser(ParserConfig(max_depth=2), FakeShellParser(tree)).parse('x')

    def test_shell_parser_receives_script(self) -> None:
        fake = FakeShellParser(fb.simple('echo', 'hi'))
        BashParser(shell_parser=fake).parse('echo hi')
        assert fake.scripts == ['echo hi']


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    """Verify parses from many threads are serialized and agree."""

    def test_shell_parser_never_reentered(self) -> None:
        shell_parser = OverlapDetectingShellParser()
        parser = BashParser(shell_parser=shell_parser)
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(parser.parse, [f'echo {index}' for index in range(40)]))
        assert shell_parser.max_active == 1

    def test_concurrent_results_match_sequential(self) -> None:
        scripts = [f'echo {index} | grep {index} && true' for index in range(30)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            concurrent = list(pool.map(parse, scripts))
        assert concurrent == [parse(script) for script in scripts]


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    """Verify the module-level façade functions."""

    def test_default_parser_is_shared(self) -> None:
        assert default_parser() is default_parser()

    def test_parse(self) -> None:
        assert parse('a; b') == CommandList(
            op='semicolon',
            left=SimpleCommand(line=1, words=[Word(word='a')]),
            right=SimpleCommand(line=1, words=[Word(word='b')]),
        )

    def test_parse_to_json(self) -> None:
        data = json.loads(parse_to_json('echo hi'))
        assert data == {
            'type': 'simple',
            'line': 1,
            'words': [{'word': 'echo', 'flags': 0}, {'word': 'hi', 'flags': 0}],
            'redirects': [],
        }

    def test_parse_to_json_compact(self) -> None:
        assert '\n' not in parse_to_json('a && b', pretty=False)

    def test_deserialize(self) -> None:
        script = 'for f in *.txt; do wc -l "$f"; done'
        assert deserialize(parse_to_json(script)) == parse(script)
        assert deserialize(parse_to_json(script).encode()) == parse(script)

    @pytest.mark.parametrize('payload', ['', '{}', '{"type": "simple", "words": "ls"}'])
    def test_deserialize_invalid(self, payload: str) -> None:
        with pytest.raises(InterchangeError) as exc_info:
            deserialize(payload)
        assert isinstance(exc_info.value.__cause__, pydantic.ValidationError)

    def test_serialize(self) -> None:
        script = 'for f in *.txt; do wc -l "$f"; done'
        assert serialize(parse(script)) == script
        assert BashParser().serialize(parse(script)) == script

    def test_schema_json(self) -> None:
        schema = json.loads(schema_json())
        assert '$defs' in schema
        assert 'SimpleCommand' in schema['$defs']
        assert '\n' not in schema_json(pretty=False)
