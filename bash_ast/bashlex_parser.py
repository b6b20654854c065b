"""ShellParser backed by bashlex.

bashlex is a port of bash's own yacc grammar, but it hands back a generic
``node`` tree: lists are flat runs of commands and ``operator`` nodes, loops
and conditionals are runs of ``reservedword`` nodes and bodies, and newlines
split a script into several top-level trees. ``BashlexShellParser`` lowers that
tree into the COMMAND-shaped contract of ``bash_ast.foreign``, applying the
grammar actions bash itself would have applied:

- ``&&``/``||`` bind tighter than ``;``/``&``/newline, all left-associative
- ``a; b &`` backgrounds only ``b`` (bash's ``connect_async_list``)
- ``a |& b`` is ``a 2>&1 | b``
- ``! pipeline`` sets CMD_INVERT_RETURN on the pipeline
- NAME=value arguments of declaration builtins are assignment words

Word text is taken from the source span rather than ``node.word``, which has
its quotes removed. Constructs bashlex does not implement (``case``,
``select``, ``(( ))``, ``[[ ]]``, ``coproc``, ``$(( ))``, a newline before the
``do`` of a ``while`` loop) surface as ShellSyntaxError. So does a
here-document whose body bashlex reads after some later command, which happens
inside multi-line compound bodies.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Mapping, Sequence

import bashlex
import bashlex.ast

from bash_ast.errors import ShellSyntaxError
from bash_ast.foreign import (
    CMD_INVERT_RETURN,
    CommandKind,
    Connection,
    Connector,
    ForCom,
    ForeignCommand,
    ForeignRedirect,
    ForeignWord,
    FunctionDefCom,
    GroupCom,
    IfCom,
    RedirInstruction,
    SimpleCom,
    SubshellCom,
    WhileCom,
)
from bash_ast.library_boundary import LibraryBoundary
from bash_ast.schemas.ast import DECLARATION_BUILTINS, WordFlag, heredoc_delimiter

__all__ = [
    'BashlexShellParser',
]

logger = logging.getLogger(__name__)

bashlex_call = LibraryBoundary(ShellSyntaxError)

type Node = bashlex.ast.node
type Item = Node | str  # a command node, or the operator joining two of them

_ASSIGNMENT_RE = re.compile(r'[A-Za-z_][A-Za-z0-9_]*(\[[^\]]*\])?\+?=')
_QUOTED_DELIMITER_RE = re.compile(r'(?<![<\'"\\])(<<-?[ \t]*)(?:([\'"])(\w+)\2|\\(\w+))')

# bashlex redirect type -> (instruction, fd implied when none is written)
_FILE_REDIRECTS: Mapping[str, tuple[RedirInstruction, int]] = {
    '<': (RedirInstruction.INPUT_DIRECTION, 0),
    '>': (RedirInstruction.OUTPUT_DIRECTION, 1),
    '>>': (RedirInstruction.APPENDING_TO, 1),
    '>|': (RedirInstruction.OUTPUT_FORCE, 1),
    '<>': (RedirInstruction.INPUT_OUTPUT, 0),
    '<<<': (RedirInstruction.READING_STRING, 0),
    '&>': (RedirInstruction.ERR_AND_OUT, 1),
    '&>>': (RedirInstruction.APPEND_ERR_AND_OUT, 1),
}


@dataclasses.dataclass(frozen=True, slots=True)
class _Duplication:
    default_fd: int
    by_fd: RedirInstruction
    by_word: RedirInstruction
    move_fd: RedirInstruction
    move_word: RedirInstruction


_DUPLICATIONS: Mapping[str, _Duplication] = {
    '<&': _Duplication(
        default_fd=0,
        by_fd=RedirInstruction.DUPLICATING_INPUT,
        by_word=RedirInstruction.DUPLICATING_INPUT_WORD,
        move_fd=RedirInstruction.MOVE_INPUT,
        move_word=RedirInstruction.MOVE_INPUT_WORD,
    ),
    '>&': _Duplication(
        default_fd=1,
        by_fd=RedirInstruction.DUPLICATING_OUTPUT,
        by_word=RedirInstruction.DUPLICATING_OUTPUT_WORD,
        move_fd=RedirInstruction.MOVE_OUTPUT,
        move_word=RedirInstruction.MOVE_OUTPUT_WORD,
    ),
}

_SEPARATORS = frozenset({';', '&', '\n'})


class BashlexShellParser:
    """Parse script text with bashlex and lower the result to a foreign tree."""

    def parse(self, script: str) -> ForeignCommand:
        # bashlex only reads a here-document body once it sees the newline after it.
        source = script if script.endswith('\n') else script + '\n'
        masked, delimiters = _unquote_heredoc_delimiters(source)
        with bashlex_call:
            trees = bashlex.parse(masked)
        logger.debug(f'bashlex produced {len(trees)} top-level tree(s)')
        return _Lowering(source, delimiters).script(trees)


def _unquote_heredoc_delimiters(source: str) -> tuple[str, Mapping[int, str]]:
    """Strip the quotes from here-document delimiters such as ``<<'EOF'``.

    bashlex compares the closing line with the delimiter as written, quotes
    included, so a quoted delimiter never terminates its document. Each removed
    character becomes a trailing space, which keeps every offset into the script
    unchanged. The mapping gives the delimiter as written, by its offset.
    """
    delimiters: dict[int, str] = {}

    def unquote(match: re.Match[str]) -> str:
        operator, name = match[1], match[3] or match[4]
        delimiters[match.start() + len(operator)] = match[0][len(operator) :]
        return operator + name + ' ' * (len(match[0]) - len(operator) - len(name))

    return _QUOTED_DELIMITER_RE.sub(unquote, source), delimiters


def _lexical_flags(text: str) -> int:
    flags = WordFlag(0)
    if '$' in text or '`' in text:
        flags |= WordFlag.HAS_DOLLAR
    if any(char in text for char in '\'"\\'):
        flags |= WordFlag.QUOTED
    return int(flags)


def _connect(first: ForeignCommand, second: ForeignCommand | None, connector: Connector) -> ForeignCommand:
    return ForeignCommand(kind=CommandKind.CONNECTION, value=Connection(first, second, int(connector)))


def _connect_async(first: ForeignCommand, second: ForeignCommand | None) -> ForeignCommand:
    """``first & second``, where ``&`` applies to the last command of a ``;`` chain."""
    value = first.value
    if isinstance(value, Connection) and value.connector == Connector.SEMICOLON and value.second is not None:
        tail = _connect_async(value.second, second)
        return dataclasses.replace(first, value=dataclasses.replace(value, second=tail))
    return _connect(first, second, Connector.BACKGROUND)


class _Lowering:
    def __init__(self, source: str, delimiters: Mapping[int, str]) -> None:
        self._source = source
        self._delimiters = delimiters
        # newline ending a command line -> offset where its next document must start
        self._next_document: dict[int, int] = {}

    def _text(self, node: Node) -> str:
        start, end = node.pos
        return self._source[start:end]

    def _line(self, node: Node) -> int:
        return self._source.count('\n', 0, node.pos[0]) + 1

    def _word(self, node: Node | int | str) -> ForeignWord:
        text = str(node) if isinstance(node, (int, str)) else self._text(node)
        return ForeignWord(text, _lexical_flags(text))

    # -- lists ----------------------------------------------------------------

    def script(self, trees: Sequence[Node]) -> ForeignCommand:
        items: list[Item] = []
        for tree in trees:
            if items and not isinstance(items[-1], str):
                items.append(';')
            items.extend(self._items(tree))
        return self._fold(items)

    def _items(self, node: Node) -> list[Item]:
        if node.kind != 'list':
            return [node]
        return [part.op if part.kind == 'operator' else part for part in node.parts]

    def _body(self, nodes: Sequence[Node]) -> ForeignCommand:
        """Lower the nodes between two keywords (``do`` ... ``done``)."""
        items: list[Item] = []
        for node in nodes:
            if node.kind == 'reservedword':
                continue  # the ';' bashlex folds into for-loop headers
            if node.kind == 'operator':
                items.append(node.op)
            else:
                items.extend(self._items(node))
        return self._fold(items)

    def _fold(self, items: Sequence[Item]) -> ForeignCommand:
        """Build connections from a flat run of commands and operators."""
        result: ForeignCommand | None = None
        chain: ForeignCommand | None = None
        chain_op: str | None = None
        separator: str | None = None
        for item in items:
            if isinstance(item, str):
                if item in _SEPARATORS:
                    if chain is not None:
                        result = self._join(result, chain, separator)
                        chain = None
                    separator = item
                else:
                    chain_op = item
                continue
            command = self._command(item)
            if chain is None:
                chain = command
            else:
                chain = _connect(chain, command, Connector.AND_AND if chain_op == '&&' else Connector.OR_OR)
        if chain is not None:
            result = self._join(result, chain, separator)
        elif separator == '&' and result is not None:
            result = _connect_async(result, None)
        if result is None:
            raise ShellSyntaxError('empty command list')
        return result

    def _join(self, left: ForeignCommand | None, right: ForeignCommand, separator: str | None) -> ForeignCommand:
        if left is None:
            return right
        if separator == '&':
            return _connect_async(left, right)
        return _connect(left, right, Connector.SEMICOLON)

    # -- commands ---------------------------------------------------------------

    def _command(self, node: Node) -> ForeignCommand:
        match node.kind:
            case 'command':
                return self._simple(node)
            case 'pipeline':
                return self._pipeline(node)
            case 'list':
                return self._fold(self._items(node))
            case 'compound':
                return self._compound(node)
            case 'function':
                return self._function(node)
            case 'for' | 'while' | 'until' | 'if':
                return self._construct(node)
            case kind:
                raise ShellSyntaxError(f'unsupported construct: {kind}')

    def _simple(self, node: Node) -> ForeignCommand:
        words: list[ForeignWord] = []
        redirects: list[ForeignRedirect] = []
        command_name: str | None = None
        for part in node.parts:
            match part.kind:
                case 'redirect':
                    redirects.append(self._redirect(part))
                case 'heredoc':
                    continue  # document already attached to its redirect
                case 'assignment' if command_name is None:
                    text = self._text(part)
                    words.append(ForeignWord(text, int(_lexical_flags(text) | WordFlag.ASSIGNMENT)))
                case 'word' | 'assignment':
                    text = self._text(part)
                    flags = _lexical_flags(text)
                    if command_name is None:
                        command_name = text
                        if text in DECLARATION_BUILTINS:
                            flags |= WordFlag.ASSIGNMENT_BUILTIN
                    elif command_name in DECLARATION_BUILTINS and _ASSIGNMENT_RE.match(text):
                        flags |= WordFlag.ASSIGNMENT | WordFlag.ASSIGNMENT_ARGUMENT
                    words.append(ForeignWord(text, int(flags)))
                case kind:
                    raise ShellSyntaxError(f'unsupported command element: {kind}')
        line = self._line(node)
        return ForeignCommand(
            kind=CommandKind.SIMPLE,
            value=SimpleCom(words=words, redirects=redirects, line=line),
            line=line,
        )

    def _pipeline(self, node: Node) -> ForeignCommand:
        negated = False
        stages: list[ForeignCommand] = []
        for part in node.parts:
            if part.kind == 'reservedword':
                if part.word != '!':
                    raise ShellSyntaxError(f'unsupported pipeline prefix: {part.word}')
                negated = not negated
            elif part.kind == 'pipe':
                if part.pipe == '|&':
                    stages[-1] = _with_stderr(stages[-1])
            else:
                stages.append(self._command(part))
        if not stages:
            raise ShellSyntaxError('empty pipeline')
        pipeline = stages[0]
        for stage in stages[1:]:
            pipeline = _connect(pipeline, stage, Connector.PIPE)
        if negated:
            pipeline = dataclasses.replace(pipeline, flags=pipeline.flags | CMD_INVERT_RETURN)
        return pipeline

    def _compound(self, node: Node) -> ForeignCommand:
        first = node.list[0]
        if first.kind == 'reservedword' and first.word in ('{', '('):
            body = self._body(node.list[1:-1])
            line = self._line(node)
            if first.word == '{':
                command = ForeignCommand(kind=CommandKind.GROUP, value=GroupCom(body), line=line)
            else:
                command = ForeignCommand(kind=CommandKind.SUBSHELL, value=SubshellCom(body, line=line), line=line)
        elif len(node.list) == 1:
            command = self._command(node.list[0])
        else:
            raise ShellSyntaxError(f'unsupported compound command: {self._text(node)!r}')
        redirects = [self._redirect(redirect) for redirect in node.redirects]
        return dataclasses.replace(command, redirects=[*command.redirects, *redirects])

    def _construct(self, node: Node) -> ForeignCommand:
        """for/while/until/if: a run of reserved words and bodies."""
        parts = node.parts
        match node.kind:
            case 'for':
                return self._for(node, parts)
            case 'while' | 'until':
                do = _keyword_index(parts, 'do', start=1)
                kind = CommandKind.WHILE if node.kind == 'while' else CommandKind.UNTIL
                return ForeignCommand(
                    kind=kind,
                    value=WhileCom(self._body(parts[1:do]), self._body(parts[do + 1 : -1])),
                    line=self._line(node),
                )
            case _:
                return self._if(node, parts)

    def _for(self, node: Node, parts: Sequence[Node]) -> ForeignCommand:
        do = _keyword_index(parts, 'do', '{', start=2)
        header = parts[2:do]
        words = None
        if header and header[0].kind in ('reservedword', 'word') and header[0].word == 'in':
            words = [self._word(part) for part in header[1:] if part.kind == 'word']
        line = self._line(node)
        return ForeignCommand(
            kind=CommandKind.FOR,
            value=ForCom(self._word(parts[1]), words, self._body(parts[do + 1 : -1]), line=line),
            line=line,
        )

    def _if(self, node: Node, parts: Sequence[Node]) -> ForeignCommand:
        segments: list[tuple[Node, list[Node]]] = []
        for part in parts:
            if part.kind == 'reservedword' and part.word in ('if', 'then', 'elif', 'else', 'fi'):
                segments.append((part, []))
            elif segments:
                segments[-1][1].append(part)
        branches: list[tuple[Node, list[Node], list[Node]]] = []
        condition: tuple[Node, list[Node]] = (node, [])
        else_body: list[Node] | None = None
        for keyword, nodes in segments:
            match keyword.word:
                case 'if' | 'elif':
                    condition = (keyword, nodes)
                case 'then':
                    branches.append((condition[0], condition[1], nodes))
                case 'else':
                    else_body = nodes
        lowered = [(keyword, self._body(test), self._body(then_body)) for keyword, test, then_body in branches]
        result = self._body(else_body) if else_body is not None else None
        for keyword, test_command, then_command in reversed(lowered):
            result = ForeignCommand(
                kind=CommandKind.IF,
                value=IfCom(test_command, then_command, result),
                line=self._line(keyword),
            )
        if result is None:
            raise ShellSyntaxError('if without a condition')
        return result

    def _function(self, node: Node) -> ForeignCommand:
        line = self._line(node)
        return ForeignCommand(
            kind=CommandKind.FUNCTION_DEF,
            value=FunctionDefCom(self._word(node.name), self._command(node.body), line=line),
            line=line,
        )

    # -- redirects ----------------------------------------------------------------

    def _redirect(self, node: Node) -> ForeignRedirect:
        source = node.input
        if source is not None and not isinstance(source, int):
            raise ShellSyntaxError('named file descriptor redirections are not supported')
        if node.type in ('<<', '<<-'):
            return self._heredoc(node, source)
        duplication = _DUPLICATIONS.get(node.type)
        if duplication is not None:
            return self._duplication(node, duplication, source)
        entry = _FILE_REDIRECTS.get(node.type)
        if entry is None:
            raise ShellSyntaxError(f'unsupported redirection: {node.type}')
        instruction, default_fd = entry
        return ForeignRedirect(
            int(instruction),
            redirector=default_fd if source is None else source,
            filename=self._word(node.output),
        )

    def _duplication(self, node: Node, duplication: _Duplication, source: int | None) -> ForeignRedirect:
        redirector = duplication.default_fd if source is None else source
        target = node.output
        text = str(target) if isinstance(target, (int, str)) else self._text(target)
        if text == '-':
            return ForeignRedirect(int(RedirInstruction.CLOSE_THIS), redirector=redirector)
        if text.isdigit():
            return ForeignRedirect(int(duplication.by_fd), redirector=redirector, dest=int(text))
        if text.endswith('-'):
            if text[:-1].isdigit():
                return ForeignRedirect(int(duplication.move_fd), redirector=redirector, dest=int(text[:-1]))
            return ForeignRedirect(
                int(duplication.move_word), redirector=redirector, filename=self._word(text[:-1])
            )
        return ForeignRedirect(int(duplication.by_word), redirector=redirector, filename=self._word(text))

    def _heredoc(self, node: Node, source: int | None) -> ForeignRedirect:
        word = node.output
        eof = self._delimiters.get(word.pos[0]) or self._text(word)
        body = self._document(node, word, heredoc_delimiter(eof))
        instruction = RedirInstruction.DEBLANK_READING_UNTIL if node.type == '<<-' else RedirInstruction.READING_UNTIL
        return ForeignRedirect(
            int(instruction),
            redirector=0 if source is None else source,
            filename=ForeignWord(body),
            here_doc_eof=eof,
        )

    def _document(self, node: Node, word: Node, delimiter: str) -> str:
        """Body of a here-document, checked to start where bash reads it."""
        heredoc = getattr(node, 'heredoc', None)
        if heredoc is None:
            return ''
        start, end = heredoc.pos
        line_end = self._source.find('\n', word.pos[1])
        if start != self._next_document.get(line_end, line_end + 1):
            raise ShellSyntaxError(f'here-document {delimiter!r} on line {self._line(word)} read out of place')
        self._next_document[line_end] = self._source.find('\n', end - 1) + 1
        # bashlex keeps the closing delimiter line and strips leading tabs for <<-
        text = heredoc.value if node.type == '<<-' else self._source[start:end]
        text = text.removesuffix('\n')
        if text == delimiter:
            return ''
        if text.endswith('\n' + delimiter):
            return text[: -len(delimiter)]
        return text + '\n' if text else ''


def _keyword_index(parts: Sequence[Node], *keywords: str, start: int) -> int:
    for index in range(start, len(parts)):
        part = parts[index]
        if part.kind == 'reservedword' and part.word in keywords:
            return index
    raise ShellSyntaxError(f'missing {keywords[0]!r}')


def _with_stderr(command: ForeignCommand) -> ForeignCommand:
    """Append the ``2>&1`` bash adds to the left side of ``|&``."""
    stderr = ForeignRedirect(int(RedirInstruction.DUPLICATING_OUTPUT), redirector=2, dest=1)
    if isinstance(command.value, SimpleCom):
        value = dataclasses.replace(command.value, redirects=[*command.value.redirects, stderr])
        return dataclasses.replace(command, value=value)
    return dataclasses.replace(command, redirects=[*command.redirects, stderr])
