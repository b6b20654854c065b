"""Canonical shell AST.

Every node is an immutable StrictModel. Commands, conditional expressions and
redirect targets are tagged unions discriminated by ``type``, ``cond_type`` and
``kind`` respectively; that tagged shape is also the JSON interchange format,
so ``command_from_json(command_to_json(cmd)) == cmd`` for every tree the
normalizer builds.

Optional fields are ``None`` rather than empty: a simple command without
assignments has ``assignments=None``, a ``for`` loop without an ``in`` clause
has ``words=None`` (while ``for x in; do ...`` has ``words=[]``).
"""

from __future__ import annotations

import enum
import re
from collections.abc import Iterator, Mapping, Sequence
from typing import Annotated, Any, Literal

import pydantic

from bash_ast.schemas.base import StrictModel

__all__ = [
    'DECLARATION_BUILTINS',
    'DEFAULT_SOURCE_FD',
    'Arithmetic',
    'ArithmeticFor',
    'CaseClause',
    'CaseClauseFlags',
    'CaseCommand',
    'Command',
    'CommandList',
    'CondAnd',
    'CondBinary',
    'CondGrouped',
    'CondNot',
    'CondOr',
    'CondTerm',
    'CondUnary',
    'Conditional',
    'ConditionalExpr',
    'Coproc',
    'FdTarget',
    'FileTarget',
    'ForLoop',
    'FunctionDef',
    'Group',
    'IfCommand',
    'ListOp',
    'Pipeline',
    'Redirect',
    'RedirectTarget',
    'RedirectType',
    'SelectCommand',
    'SimpleCommand',
    'Subshell',
    'UntilLoop',
    'WhileLoop',
    'Word',
    'WordFlag',
    'command_from_json',
    'command_schema',
    'command_to_dict',
    'command_to_json',
    'empty_command',
    'heredoc_delimiter',
    'is_placeholder',
    'iter_children',
    'line_of',
    'max_depth',
    'redirects_of',
    'strip_lines',
]


class WordFlag(enum.IntFlag):
    """Lexical markers on a word (bash's ``W_*`` bits)."""

    HAS_DOLLAR = 1 << 0
    QUOTED = 1 << 1
    ASSIGNMENT = 1 << 2
    SPLIT_SPACE = 1 << 3
    NO_SPLIT = 1 << 4
    NO_GLOB = 1 << 5
    TILDE_EXPANSION = 1 << 7
    COMPOUND_ASSIGNMENT = 1 << 15
    ASSIGNMENT_BUILTIN = 1 << 16
    ASSIGNMENT_ARGUMENT = 1 << 17


type ListOp = Literal['and', 'or', 'semicolon', 'background', 'newline']

type RedirectType = Literal[
    'input',
    'output',
    'append',
    'here_doc',
    'here_string',
    'input_output',
    'clobber',
    'dup_input',
    'dup_output',
    'close',
    'err_and_out',
    'append_err_and_out',
    'move_input',
    'move_output',
]

# Source fd implied when a redirect is written without one. None means the
# operator takes no source fd at all (``&>``, ``&>>``).
DEFAULT_SOURCE_FD: Mapping[str, int | None] = {
    'input': 0,
    'here_doc': 0,
    'here_string': 0,
    'input_output': 0,
    'dup_input': 0,
    'move_input': 0,
    'output': 1,
    'append': 1,
    'clobber': 1,
    'dup_output': 1,
    'move_output': 1,
    'close': 1,
    'err_and_out': None,
    'append_err_and_out': None,
}

# Builtins whose NAME=value arguments are assignments rather than plain words.
DECLARATION_BUILTINS = frozenset({'declare', 'typeset', 'local', 'export', 'readonly'})

_QUOTING = re.compile(r"""\\(.)|['"]""", re.DOTALL)


# ---------------------------------------------------------------------------
# Words and redirects
# ---------------------------------------------------------------------------


class Word(StrictModel):
    word: str
    flags: int = 0

    @property
    def is_assignment(self) -> bool:
        return bool(self.flags & WordFlag.ASSIGNMENT)


class FileTarget(StrictModel):
    """Filename target. For here-documents, ``name`` holds the document body."""

    kind: Literal['file'] = 'file'
    name: str


class FdTarget(StrictModel):
    """File-descriptor target of a dup/move redirect; ``-1`` for close."""

    kind: Literal['fd'] = 'fd'
    fd: int


RedirectTarget = Annotated[FileTarget | FdTarget, pydantic.Field(discriminator='kind')]


class Redirect(StrictModel):
    direction: RedirectType
    source_fd: int | None = None
    target: RedirectTarget
    here_doc_eof: str | None = None  # delimiter as written, quotes kept


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class SimpleCommand(StrictModel):
    type: Literal['simple'] = 'simple'
    line: int | None = None
    words: Sequence[Word] = pydantic.Field(default_factory=list)
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)
    assignments: Sequence[str] | None = None

    @pydantic.field_validator('assignments')
    @classmethod
    def _empty_assignments_are_none(cls, value: Sequence[str] | None) -> Sequence[str] | None:
        return value or None


class Pipeline(StrictModel):
    type: Literal['pipeline'] = 'pipeline'
    line: int | None = None
    commands: Annotated[Sequence[Command], pydantic.Field(min_length=1)]
    negated: bool = False

    @pydantic.field_validator('commands')
    @classmethod
    def _no_nested_pipelines(cls, value: Sequence[Command]) -> Sequence[Command]:
        if any(isinstance(stage, Pipeline) for stage in value):
            raise ValueError('pipeline stages must not be pipelines')
        return value


class CommandList(StrictModel):
    """Binary operator node; chains nest as the connectors did in the source."""

    type: Literal['list'] = 'list'
    line: int | None = None
    op: ListOp
    left: Command
    right: Command


class ForLoop(StrictModel):
    type: Literal['for'] = 'for'
    line: int | None = None
    variable: str
    words: Sequence[str] | None = None
    body: Command
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class SelectCommand(StrictModel):
    type: Literal['select'] = 'select'
    line: int | None = None
    variable: str
    words: Sequence[str] | None = None
    body: Command
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class WhileLoop(StrictModel):
    type: Literal['while'] = 'while'
    line: int | None = None
    test: Command
    body: Command
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class UntilLoop(StrictModel):
    type: Literal['until'] = 'until'
    line: int | None = None
    test: Command
    body: Command
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class IfCommand(StrictModel):
    """``if``/``elif``/``else``; an elif is a nested IfCommand in ``else_branch``."""

    type: Literal['if'] = 'if'
    line: int | None = None
    condition: Command
    then_branch: Command
    else_branch: Command | None = None
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class CaseClauseFlags(StrictModel):
    fallthrough: bool = False  # ;&
    test_next: bool = False  # ;;&


class CaseClause(StrictModel):
    patterns: Sequence[str]
    action: Command | None = None
    flags: CaseClauseFlags | None = None  # None for a plain ;;


class CaseCommand(StrictModel):
    type: Literal['case'] = 'case'
    line: int | None = None
    word: str
    clauses: Sequence[CaseClause] = pydantic.Field(default_factory=list)
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class Group(StrictModel):
    type: Literal['group'] = 'group'
    line: int | None = None
    body: Command
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class Subshell(StrictModel):
    type: Literal['subshell'] = 'subshell'
    line: int | None = None
    body: Command
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class FunctionDef(StrictModel):
    type: Literal['function_def'] = 'function_def'
    line: int | None = None
    name: str
    body: Command
    source_file: str | None = None


class Arithmetic(StrictModel):
    type: Literal['arithmetic'] = 'arithmetic'
    line: int | None = None
    expression: str
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class ArithmeticFor(StrictModel):
    type: Literal['arithmetic_for'] = 'arithmetic_for'
    line: int | None = None
    init: str
    test: str
    step: str
    body: Command
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class Conditional(StrictModel):
    type: Literal['conditional'] = 'conditional'
    line: int | None = None
    expr: ConditionalExpr
    redirects: Sequence[Redirect] = pydantic.Field(default_factory=list)


class Coproc(StrictModel):
    type: Literal['coproc'] = 'coproc'
    line: int | None = None
    name: str | None = None
    body: Command


# ---------------------------------------------------------------------------
# [[ ... ]] expressions
# ---------------------------------------------------------------------------


class CondUnary(StrictModel):
    cond_type: Literal['unary'] = 'unary'
    op: str
    arg: str


class CondBinary(StrictModel):
    cond_type: Literal['binary'] = 'binary'
    op: str
    left: str
    right: str


class CondAnd(StrictModel):
    cond_type: Literal['and'] = 'and'
    left: ConditionalExpr
    right: ConditionalExpr


class CondOr(StrictModel):
    cond_type: Literal['or'] = 'or'
    left: ConditionalExpr
    right: ConditionalExpr


class CondNot(StrictModel):
    cond_type: Literal['not'] = 'not'
    expr: ConditionalExpr


class CondTerm(StrictModel):
    cond_type: Literal['term'] = 'term'
    word: str


class CondGrouped(StrictModel):
    """Parenthesized sub-expression."""

    cond_type: Literal['grouped'] = 'grouped'
    expr: ConditionalExpr


ConditionalExpr = Annotated[
    CondUnary | CondBinary | CondAnd | CondOr | CondNot | CondTerm | CondGrouped,
    pydantic.Field(discriminator='cond_type'),
]

Command = Annotated[
    SimpleCommand
    | Pipeline
    | CommandList
    | ForLoop
    | WhileLoop
    | UntilLoop
    | IfCommand
    | CaseCommand
    | SelectCommand
    | Group
    | Subshell
    | FunctionDef
    | Arithmetic
    | ArithmeticFor
    | Conditional
    | Coproc,
    pydantic.Field(discriminator='type'),
]

for _model in (
    Redirect,
    SimpleCommand,
    Pipeline,
    CommandList,
    ForLoop,
    SelectCommand,
    WhileLoop,
    UntilLoop,
    IfCommand,
    CaseClause,
    CaseCommand,
    Group,
    Subshell,
    FunctionDef,
    Arithmetic,
    ArithmeticFor,
    Conditional,
    Coproc,
    CondAnd,
    CondOr,
    CondNot,
    CondGrouped,
):
    _model.model_rebuild()
del _model

_command_adapter: pydantic.TypeAdapter[Command] = pydantic.TypeAdapter(Command)

_REDIRECTING = (
    SimpleCommand,
    ForLoop,
    SelectCommand,
    WhileLoop,
    UntilLoop,
    IfCommand,
    CaseCommand,
    Group,
    Subshell,
    Arithmetic,
    ArithmeticFor,
    Conditional,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def heredoc_delimiter(eof: str) -> str:
    """Closing line of a here-document whose marker was written as ``eof``.

    Quote removal only: ``'EOF'``, ``"EOF"`` and ``\\EOF`` all close on ``EOF``.
    """
    return _QUOTING.sub(lambda match: match.group(1) or '', eof)


def empty_command() -> SimpleCommand:
    """The empty Simple used as the right operand of a trailing ``&``."""
    return SimpleCommand()


def is_placeholder(command: Command) -> bool:
    return (
        isinstance(command, SimpleCommand)
        and not command.words
        and not command.redirects
        and command.assignments is None
    )


def redirects_of(command: Command) -> Sequence[Redirect]:
    """Wrapper redirects of ``command``; empty for variants that carry none."""
    if isinstance(command, _REDIRECTING):
        return command.redirects
    return ()


def iter_children(command: Command) -> Iterator[Command]:
    """Yield the direct child commands of ``command`` in source order."""
    match command:
        case Pipeline():
            yield from command.commands
        case CommandList():
            yield command.left
            yield command.right
        case ForLoop() | SelectCommand() | ArithmeticFor() | Group() | Subshell() | FunctionDef() | Coproc():
            yield command.body
        case WhileLoop() | UntilLoop():
            yield command.test
            yield command.body
        case IfCommand():
            yield command.condition
            yield command.then_branch
            if command.else_branch is not None:
                yield command.else_branch
        case CaseCommand():
            for clause in command.clauses:
                if clause.action is not None:
                    yield clause.action
        case _:
            return


def line_of(command: Command) -> int | None:
    """Best-known line: the node's own, else the first known descendant line."""
    stack = [command]
    while stack:
        node = stack.pop()
        if node.line is not None:
            return node.line
        stack.extend(reversed(list(iter_children(node))))
    return None


def max_depth(command: Command) -> int:
    """Nesting depth of the command tree (a lone simple command is 1)."""
    deepest = 0
    stack = [(command, 1)]
    while stack:
        node, depth = stack.pop()
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in iter_children(node))
    return deepest


def strip_lines[M: pydantic.BaseModel](node: M) -> M:
    """Return a copy of ``node`` with every ``line`` erased, recursively."""
    updates: dict[str, Any] = {}
    for name in type(node).model_fields:
        value = getattr(node, name)
        if name == 'line':
            updates[name] = None
        elif isinstance(value, pydantic.BaseModel):
            updates[name] = strip_lines(value)
        elif isinstance(value, (list, tuple)) and any(isinstance(item, pydantic.BaseModel) for item in value):
            updates[name] = [strip_lines(item) for item in value]
    return node.model_copy(update=updates)


# ---------------------------------------------------------------------------
# Interchange
# ---------------------------------------------------------------------------


def command_to_json(command: Command, *, pretty: bool = False) -> str:
    """Serialize to the JSON interchange format, omitting ``None`` fields."""
    return _command_adapter.dump_json(command, exclude_none=True, indent=2 if pretty else None).decode()


def command_to_dict(command: Command) -> dict[str, Any]:
    return _command_adapter.dump_python(command, mode='json', exclude_none=True)


def command_from_json(data: str | bytes) -> Command:
    """Validate a JSON interchange payload. Raises ``pydantic.ValidationError``."""
    return _command_adapter.validate_json(data)


def command_schema() -> dict[str, Any]:
    """JSON Schema of the interchange format."""
    return _command_adapter.json_schema()
