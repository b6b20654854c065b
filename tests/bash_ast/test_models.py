"""Tests for the AST models, their helpers and the JSON interchange format."""

from __future__ import annotations

import json
import typing

import pydantic
import pytest

from bash_ast.schemas.ast import (
    DEFAULT_SOURCE_FD,
    CaseClause,
    CaseClauseFlags,
    CaseCommand,
    CommandList,
    CondAnd,
    CondNot,
    CondTerm,
    CondUnary,
    Conditional,
    FdTarget,
    FileTarget,
    ForLoop,
    Group,
    IfCommand,
    Pipeline,
    Redirect,
    RedirectType,
    SimpleCommand,
    Subshell,
    WhileLoop,
    Word,
    WordFlag,
    command_from_json,
    command_schema,
    command_to_dict,
    command_to_json,
    empty_command,
    heredoc_delimiter,
    is_placeholder,
    iter_children,
    line_of,
    max_depth,
    redirects_of,
    strip_lines,
)


def simple(*texts: str, line: int | None = None) -> SimpleCommand:
    return SimpleCommand(line=line, words=[Word(word=text) for text in texts])


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestStrictModels:
    """Verify the models reject anything but exact, well-typed input."""

    def test_extra_field_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Word(word='a', quoted=True)  # type: ignore[call-arg]

    def test_no_type_coercion(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            FdTarget(fd='1')  # type: ignore[arg-type]

    def test_frozen(self) -> None:
        word = Word(word='a')
        with pytest.raises(pydantic.ValidationError):
            word.word = 'b'  # type: ignore[misc]

    def test_unknown_redirect_direction_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Redirect(direction='pipe', target=FdTarget(fd=1))  # type: ignore[arg-type]

    def test_empty_pipeline_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            Pipeline(commands=[])

    def test_nested_pipeline_rejected(self) -> None:
        inner = Pipeline(commands=[simple('a'), simple('b')])
        with pytest.raises(pydantic.ValidationError):
            Pipeline(commands=[inner, simple('c')])

    def test_empty_assignments_become_none(self) -> None:
        assert SimpleCommand(assignments=[]).assignments is None

    def test_equality_by_value(self) -> None:
        assert simple('a', 'b') == simple('a', 'b')
        assert simple('a') != simple('b')

    def test_is_assignment(self) -> None:
        assert Word(word='A=1', flags=int(WordFlag.ASSIGNMENT)).is_assignment
        assert not Word(word='echo').is_assignment

    def test_default_source_fd_covers_every_direction(self) -> None:
        assert set(DEFAULT_SOURCE_FD) == set(typing.get_args(RedirectType.__value__))


# ---------------------------------------------------------------------------
# Interchange
# ---------------------------------------------------------------------------


class TestInterchange:
    """Verify the tagged JSON form of the AST."""

    def test_none_fields_omitted(self) -> None:
        data = json.loads(command_to_json(simple('ls')))
        assert data == {'type': 'simple', 'words': [{'word': 'ls', 'flags': 0}], 'redirects': []}

    def test_variant_tags(self) -> None:
        command = CommandList(op='and', left=simple('a'), right=Group(body=simple('b')))
        data = command_to_dict(command)
        assert data['type'] == 'list'
        assert data['left']['type'] == 'simple'
        assert data['right']['type'] == 'group'

    def test_redirect_target_tags(self) -> None:
        command = SimpleCommand(
            words=[Word(word='cmd')],
            redirects=[
                Redirect(direction='output', target=FileTarget(name='out')),
                Redirect(direction='dup_output', source_fd=2, target=FdTarget(fd=1)),
            ],
        )
        redirects = command_to_dict(command)['redirects']
        assert redirects == [
            {'direction': 'output', 'target': {'kind': 'file', 'name': 'out'}},
            {'direction': 'dup_output', 'source_fd': 2, 'target': {'kind': 'fd', 'fd': 1}},
        ]

    def test_for_words_none_and_empty_distinguished(self) -> None:
        assert 'words' not in command_to_dict(ForLoop(variable='x', body=simple('a')))
        assert command_to_dict(ForLoop(variable='x', words=[], body=simple('a')))['words'] == []

    def test_pretty_output_is_indented(self) -> None:
        assert '\n  ' in command_to_json(simple('ls'), pretty=True)
        assert '\n' not in command_to_json(simple('ls'))

    def test_decode_inverts_encode(self) -> None:
        command = IfCommand(
            line=1,
            condition=Conditional(
                line=1,
                expr=CondAnd(left=CondUnary(op='-f', arg='x'), right=CondNot(expr=CondTerm(word='$y'))),
            ),
            then_branch=CaseCommand(
                line=2,
                word='$x',
                clauses=[
                    CaseClause(patterns=['a'], action=simple('a', line=2), flags=CaseClauseFlags(fallthrough=True)),
                    CaseClause(patterns=['*']),
                ],
            ),
            else_branch=Subshell(
                body=CommandList(op='background', left=simple('sleep', '1', line=3), right=empty_command()),
                redirects=[Redirect(direction='here_doc', target=FileTarget(name='hi\n'), here_doc_eof="'EOF'")],
            ),
        )
        assert command_from_json(command_to_json(command)) == command

    @pytest.mark.parametrize(
        'payload',
        [
            'not json',
            '{}',
            '{"type": "nope"}',
            '{"type": "simple", "words": [{"word": 1}]}',
            '{"type": "simple", "unexpected": true}',
            '{"type": "pipeline", "commands": []}',
        ],
    )
    def test_invalid_payload_rejected(self, payload: str) -> None:
        with pytest.raises(pydantic.ValidationError):
            command_from_json(payload)

    def test_schema_lists_every_variant(self) -> None:
        schema = command_schema()
        assert schema['discriminator']['propertyName'] == 'type'
        assert set(schema['discriminator']['mapping']) == {
            'simple',
            'pipeline',
            'list',
            'for',
            'while',
            'until',
            'if',
            'case',
            'select',
            'group',
            'subshell',
            'function_def',
            'arithmetic',
            'arithmetic_for',
            'conditional',
            'coproc',
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    """Verify tree helpers and here-document delimiter handling."""

    @pytest.mark.parametrize(
        'eof, delimiter',
        [
            ('EOF', 'EOF'),
            ("'EOF'", 'EOF'),
            ('"EOF"', 'EOF'),
            ('\\EOF', 'EOF'),
            ("E'N'D", 'END'),
            ('EOF-1', 'EOF-1'),
        ],
    )
    def test_heredoc_delimiter(self, eof: str, delimiter: str) -> None:
        assert heredoc_delimiter(eof) == delimiter

    def test_placeholder(self) -> None:
        assert is_placeholder(empty_command())
        assert not is_placeholder(simple('a'))
        assert not is_placeholder(SimpleCommand(assignments=['A=1']))
        assert not is_placeholder(Group(body=empty_command()))

    def test_redirects_of(self) -> None:
        redirect = Redirect(direction='output', target=FileTarget(name='out'))
        assert redirects_of(Group(body=simple('a'), redirects=[redirect])) == [redirect]
        assert redirects_of(Pipeline(commands=[simple('a')])) == ()

    def test_iter_children_in_source_order(self) -> None:
        command = IfCommand(condition=simple('a'), then_branch=simple('b'), else_branch=simple('c'))
        assert list(iter_children(command)) == [simple('a'), simple('b'), simple('c')]

    def test_iter_children_skips_empty_case_actions(self) -> None:
        command = CaseCommand(
            word='x',
            clauses=[CaseClause(patterns=['a']), CaseClause(patterns=['b'], action=simple('b'))],
        )
        assert list(iter_children(command)) == [simple('b')]

    def test_leaf_has_no_children(self) -> None:
        assert list(iter_children(simple('a'))) == []

    def test_line_of_falls_back_to_first_descendant(self) -> None:
        command = CommandList(op='semicolon', left=simple('a', line=3), right=simple('b', line=4))
        assert line_of(command) == 3
        assert line_of(simple('a')) is None

    def test_max_depth(self) -> None:
        assert max_depth(simple('a')) == 1
        assert max_depth(Group(body=CommandList(op='and', left=simple('a'), right=simple('b')))) == 3

    def test_strip_lines(self) -> None:
        command = WhileLoop(
            line=1,
            test=simple('true', line=1),
            body=CaseCommand(line=2, word='x', clauses=[CaseClause(patterns=['a'], action=simple('a', line=3))]),
        )
        stripped = strip_lines(command)
        assert stripped == WhileLoop(
            test=simple('true'),
            body=CaseCommand(word='x', clauses=[CaseClause(patterns=['a'], action=simple('a'))]),
        )
        assert command.line == 1
