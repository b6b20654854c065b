"""The ShellParser's command tree, as the normalizer reads it.

The shapes follow bash's ``COMMAND`` structures (command.h): a tagged command
carrying flags, a line and wrapper redirects, whose ``value`` holds the
variant-specific payload. Any ShellParser plugs into ``normalize`` by producing
these objects; ``bash_ast.bashlex_parser`` is the one shipped with the package.

The normalizer treats this tree as untrusted: tags may be unknown, payloads may
not match their tag, children may be missing, and child lists are arbitrary
iterables (a parser may hand over lazy or linked structures), so every
traversal is bounded.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

__all__ = [
    'CASEPAT_FALLTHROUGH',
    'CASEPAT_TESTNEXT',
    'CMD_INVERT_RETURN',
    'ArithCom',
    'ArithForCom',
    'CaseCom',
    'CommandKind',
    'CondCom',
    'CondKind',
    'Connection',
    'Connector',
    'CoprocCom',
    'ForCom',
    'ForeignCommand',
    'ForeignRedirect',
    'ForeignWord',
    'FunctionDefCom',
    'GroupCom',
    'IfCom',
    'PatternList',
    'RedirInstruction',
    'SelectCom',
    'ShellParser',
    'SimpleCom',
    'SubshellCom',
    'WhileCom',
]

# ForeignCommand.flags / CondCom.flags
CMD_INVERT_RETURN = 0x04

# PatternList.flags
CASEPAT_FALLTHROUGH = 0x01
CASEPAT_TESTNEXT = 0x02


class CommandKind(enum.IntEnum):
    """bash's ``enum command_type``."""

    FOR = 0
    CASE = 1
    WHILE = 2
    IF = 3
    SIMPLE = 4
    SELECT = 5
    CONNECTION = 6
    FUNCTION_DEF = 7
    UNTIL = 8
    GROUP = 9
    ARITH = 10
    COND = 11
    ARITH_FOR = 12
    SUBSHELL = 13
    COPROC = 14


class Connector(enum.IntEnum):
    """Token values of ``Connection.connector``."""

    NEWLINE = ord('\n')
    BACKGROUND = ord('&')
    SEMICOLON = ord(';')
    PIPE = ord('|')
    AND_AND = 288
    OR_OR = 289


class RedirInstruction(enum.IntEnum):
    """bash's ``enum r_instruction``."""

    OUTPUT_DIRECTION = 0
    INPUT_DIRECTION = 1
    INPUTA_DIRECTION = 2
    APPENDING_TO = 3
    READING_UNTIL = 4
    READING_STRING = 5
    DUPLICATING_INPUT = 6
    DUPLICATING_OUTPUT = 7
    DEBLANK_READING_UNTIL = 8
    CLOSE_THIS = 9
    ERR_AND_OUT = 10
    INPUT_OUTPUT = 11
    OUTPUT_FORCE = 12
    DUPLICATING_INPUT_WORD = 13
    DUPLICATING_OUTPUT_WORD = 14
    MOVE_INPUT = 15
    MOVE_OUTPUT = 16
    MOVE_INPUT_WORD = 17
    MOVE_OUTPUT_WORD = 18
    APPEND_ERR_AND_OUT = 19


class CondKind(enum.IntEnum):
    """``[[ ]]`` node types. NOT is an extension; bash marks negation with CMD_INVERT_RETURN."""

    AND = 1
    OR = 2
    UNARY = 3
    BINARY = 4
    TERM = 5
    EXPR = 6
    NOT = 7


@dataclass(frozen=True, slots=True)
class ForeignWord:
    word: str | None
    flags: int = 0


@dataclass(frozen=True, slots=True)
class ForeignRedirect:
    """One redirection.

    ``redirector`` is the source fd (bash stores the operator's default when
    none was written). ``dest`` is the target fd of dup/move instructions;
    every other instruction names its target in ``filename``, which for
    here-documents holds the document body.
    """

    instruction: int
    redirector: int = -1
    dest: int = 0
    filename: ForeignWord | None = None
    here_doc_eof: str | None = None


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SimpleCom:
    words: Iterable[ForeignWord | None] = ()
    redirects: Iterable[ForeignRedirect] = ()
    line: int = 0


@dataclass(frozen=True, slots=True)
class Connection:
    first: ForeignCommand | None
    second: ForeignCommand | None
    connector: int


@dataclass(frozen=True, slots=True)
class ForCom:
    name: ForeignWord | None
    map_list: Iterable[ForeignWord | None] | None
    action: ForeignCommand | None
    line: int = 0


@dataclass(frozen=True, slots=True)
class SelectCom:
    name: ForeignWord | None
    map_list: Iterable[ForeignWord | None] | None
    action: ForeignCommand | None
    line: int = 0


@dataclass(frozen=True, slots=True)
class WhileCom:
    """Payload of both WHILE and UNTIL commands."""

    test: ForeignCommand | None
    action: ForeignCommand | None


@dataclass(frozen=True, slots=True)
class IfCom:
    test: ForeignCommand | None
    true_case: ForeignCommand | None
    false_case: ForeignCommand | None = None


@dataclass(frozen=True, slots=True)
class PatternList:
    patterns: Iterable[ForeignWord | None] | None
    action: ForeignCommand | None
    flags: int = 0


@dataclass(frozen=True, slots=True)
class CaseCom:
    word: ForeignWord | None
    clauses: Iterable[PatternList] = ()
    line: int = 0


@dataclass(frozen=True, slots=True)
class GroupCom:
    command: ForeignCommand | None


@dataclass(frozen=True, slots=True)
class SubshellCom:
    command: ForeignCommand | None
    line: int = 0


@dataclass(frozen=True, slots=True)
class FunctionDefCom:
    name: ForeignWord | None
    command: ForeignCommand | None
    source_file: str | None = None
    line: int = 0


@dataclass(frozen=True, slots=True)
class ArithCom:
    exp: Iterable[ForeignWord | None] | None
    line: int = 0


@dataclass(frozen=True, slots=True)
class ArithForCom:
    init: Iterable[ForeignWord | None] | None
    test: Iterable[ForeignWord | None] | None
    step: Iterable[ForeignWord | None] | None
    action: ForeignCommand | None
    line: int = 0


@dataclass(frozen=True, slots=True)
class CondCom:
    """``[[ ]]`` node. Operands of UNARY/BINARY are TERM nodes in ``left``/``right``."""

    type: int
    op: ForeignWord | None = None
    left: CondCom | None = None
    right: CondCom | None = None
    flags: int = 0
    line: int = 0


@dataclass(frozen=True, slots=True)
class CoprocCom:
    name: str | None
    command: ForeignCommand | None


type CommandValue = (
    SimpleCom
    | Connection
    | ForCom
    | SelectCom
    | WhileCom
    | IfCom
    | CaseCom
    | GroupCom
    | SubshellCom
    | FunctionDefCom
    | ArithCom
    | ArithForCom
    | CondCom
    | CoprocCom
)


@dataclass(frozen=True, slots=True)
class ForeignCommand:
    kind: int
    value: CommandValue | None
    flags: int = 0
    line: int = 0
    redirects: Iterable[ForeignRedirect] = ()


class ShellParser(Protocol):
    """Anything that turns script text into a foreign command tree."""

    def parse(self, script: str) -> ForeignCommand: ...
