"""Foreign command tree -> canonical AST.

``normalize`` walks a ShellParser tree (``bash_ast.foreign``) and builds the
matching ``bash_ast.schemas.ast`` nodes. It never raises on malformed input:
an invalid handle, a payload that does not match its tag, an unknown tag or
connector, a missing required child, a field of the wrong type, or an
exceeded depth/length ceiling all make the affected subtree ``None``, which
fails its parent in turn. The reason is logged at DEBUG where the failure is
first detected.

The foreign tree is only read, never mutated or retained.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Iterable, Mapping

import pydantic

from bash_ast.foreign import (
    CASEPAT_FALLTHROUGH,
    CASEPAT_TESTNEXT,
    CMD_INVERT_RETURN,
    ArithCom,
    ArithForCom,
    CaseCom,
    CommandKind,
    CondCom,
    CondKind,
    Connection,
    Connector,
    CoprocCom,
    ForCom,
    ForeignCommand,
    ForeignRedirect,
    ForeignWord,
    FunctionDefCom,
    GroupCom,
    IfCom,
    PatternList,
    RedirInstruction,
    SelectCom,
    SimpleCom,
    SubshellCom,
    WhileCom,
)
from bash_ast.schemas.ast import (
    DEFAULT_SOURCE_FD,
    Arithmetic,
    ArithmeticFor,
    CaseClause,
    CaseClauseFlags,
    CaseCommand,
    Command,
    CommandList,
    CondAnd,
    CondBinary,
    CondGrouped,
    CondNot,
    CondOr,
    CondTerm,
    CondUnary,
    Conditional,
    ConditionalExpr,
    Coproc,
    FdTarget,
    FileTarget,
    ForLoop,
    FunctionDef,
    Group,
    IfCommand,
    ListOp,
    Pipeline,
    Redirect,
    RedirectType,
    SelectCommand,
    SimpleCommand,
    Subshell,
    UntilLoop,
    WhileLoop,
    Word,
    WordFlag,
    empty_command,
)
from bash_ast.schemas.config import MAX_DEPTH, MAX_LIST_LENGTH, Limits

__all__ = [
    'MAX_DEPTH',
    'MAX_LINE',
    'MAX_LIST_LENGTH',
    'Limits',
    'normalize',
]

logger = logging.getLogger(__name__)

MAX_LINE = 1_000_000


def normalize(node: object, *, limits: Limits | None = None) -> Command | None:
    """Convert a foreign command tree, or return None if it cannot be converted."""
    try:
        return _Normalizer(limits or Limits()).command(node, 0)
    except RecursionError:
        logger.debug('nesting exceeds the interpreter recursion limit')
        return None


_LIST_OPS: Mapping[int, ListOp] = {
    Connector.AND_AND: 'and',
    Connector.OR_OR: 'or',
    Connector.SEMICOLON: 'semicolon',
    Connector.BACKGROUND: 'background',
    Connector.NEWLINE: 'newline',
}

_DIRECTIONS: Mapping[int, RedirectType] = {
    RedirInstruction.OUTPUT_DIRECTION: 'output',
    RedirInstruction.INPUT_DIRECTION: 'input',
    RedirInstruction.INPUTA_DIRECTION: 'input',
    RedirInstruction.APPENDING_TO: 'append',
    RedirInstruction.READING_UNTIL: 'here_doc',
    RedirInstruction.DEBLANK_READING_UNTIL: 'here_doc',
    RedirInstruction.READING_STRING: 'here_string',
    RedirInstruction.DUPLICATING_INPUT: 'dup_input',
    RedirInstruction.DUPLICATING_INPUT_WORD: 'dup_input',
    RedirInstruction.DUPLICATING_OUTPUT: 'dup_output',
    RedirInstruction.DUPLICATING_OUTPUT_WORD: 'dup_output',
    RedirInstruction.CLOSE_THIS: 'close',
    RedirInstruction.ERR_AND_OUT: 'err_and_out',
    RedirInstruction.APPEND_ERR_AND_OUT: 'append_err_and_out',
    RedirInstruction.INPUT_OUTPUT: 'input_output',
    RedirInstruction.OUTPUT_FORCE: 'clobber',
    RedirInstruction.MOVE_INPUT: 'move_input',
    RedirInstruction.MOVE_INPUT_WORD: 'move_input',
    RedirInstruction.MOVE_OUTPUT: 'move_output',
    RedirInstruction.MOVE_OUTPUT_WORD: 'move_output',
}

# Instructions whose target is ForeignRedirect.dest rather than a word.
_FD_TARGETS = frozenset(
    {
        RedirInstruction.DUPLICATING_INPUT,
        RedirInstruction.DUPLICATING_OUTPUT,
        RedirInstruction.MOVE_INPUT,
        RedirInstruction.MOVE_OUTPUT,
    }
)


def _line(value: object) -> int | None:
    if not isinstance(value, int):
        logger.debug(f'line number is {type(value).__name__}, not int')
        return None
    if value <= 0 or value > MAX_LINE:
        return None
    return int(value)


def _effective_line(payload_line: object, command_line: object) -> int | None:
    if isinstance(payload_line, int) and payload_line > 0:
        return _line(payload_line)
    return _line(command_line)


def _text(word: ForeignWord | None) -> str:
    if word is None or word.word is None:
        return ''
    return word.word


class _Normalizer:
    """One conversion pass; holds the ceilings, nothing else."""

    def __init__(self, limits: Limits) -> None:
        self._limits = limits
        self._dispatch: Mapping[int, Callable[[ForeignCommand, int], Command | None]] = {
            CommandKind.SIMPLE: self._simple,
            CommandKind.CONNECTION: self._connection,
            CommandKind.FOR: self._for,
            CommandKind.SELECT: self._select,
            CommandKind.WHILE: self._while,
            CommandKind.UNTIL: self._until,
            CommandKind.IF: self._if,
            CommandKind.CASE: self._case,
            CommandKind.GROUP: self._group,
            CommandKind.SUBSHELL: self._subshell,
            CommandKind.FUNCTION_DEF: self._function_def,
            CommandKind.ARITH: self._arith,
            CommandKind.ARITH_FOR: self._arith_for,
            CommandKind.COND: self._cond_command,
            CommandKind.COPROC: self._coproc,
        }

    # -- bounded traversal ------------------------------------------------

    def _bounded[T](self, items: Iterable[T] | None, what: str) -> list[T] | None:
        """Materialize at most ``max_list_length`` items; None if there are more."""
        if items is None:
            return []
        if not isinstance(items, Iterable):
            logger.debug(f'{what} list is {type(items).__name__}, not iterable')
            return None
        limit = self._limits.max_list_length
        taken = list(itertools.islice(items, limit + 1))
        if len(taken) > limit:
            logger.debug(f'{what} list exceeds {limit} entries')
            return None
        return taken

    def _words(self, items: Iterable[ForeignWord | None] | None) -> list[Word] | None:
        taken = self._bounded(items, 'word')
        if taken is None:
            return None
        words = []
        for item in taken:
            if item is None:
                continue
            if not isinstance(item, ForeignWord):
                logger.debug(f'not a foreign word: {type(item).__name__}')
                return None
            if not isinstance(item.flags, int):
                logger.debug(f'word flags are {type(item.flags).__name__}, not int')
                return None
            words.append(Word(word=_text(item), flags=int(item.flags)))
        return words

    def _strings(self, items: Iterable[ForeignWord | None] | None) -> list[str] | None:
        words = self._words(items)
        if words is None:
            return None
        return [word.word for word in words]

    def _joined(self, items: Iterable[ForeignWord | None] | None) -> str | None:
        strings = self._strings(items)
        if strings is None:
            return None
        return ' '.join(strings)

    # -- commands -----------------------------------------------------------

    def command(self, node: object, depth: int) -> Command | None:
        if not isinstance(node, ForeignCommand):
            if node is None:
                logger.debug('missing required command')
            else:
                logger.debug(f'not a foreign command: {type(node).__name__}')
            return None
        if not isinstance(node.kind, int) or not isinstance(node.flags, int):
            logger.debug(f'command kind {node.kind!r} or flags {node.flags!r} is not an int')
            return None
        if depth > self._limits.max_depth:
            logger.debug(f'nesting exceeds {self._limits.max_depth} levels')
            return None
        handler = self._dispatch.get(node.kind)
        if handler is None:
            logger.debug(f'unknown command kind {node.kind!r}')
            return None
        try:
            result = handler(node, depth)
        except pydantic.ValidationError as exc:
            logger.debug(f'{CommandKind(node.kind).name} command has {exc.error_count()} ill-typed field(s)')
            return None
        if result is None:
            return None
        if node.flags & CMD_INVERT_RETURN and not isinstance(result, Pipeline):
            return Pipeline(commands=[result], negated=True)
        return result

    def _payload[T](self, node: ForeignCommand, expected: type[T]) -> T | None:
        if not isinstance(node.value, expected):
            logger.debug(f'{CommandKind(node.kind).name} command carries {type(node.value).__name__}')
            return None
        return node.value

    def _wrapper_redirects(self, node: ForeignCommand) -> list[Redirect] | None:
        return self._redirects(node.redirects)

    def _simple(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, SimpleCom)
        if value is None:
            return None
        words = self._words(value.words)
        inner = self._redirects(value.redirects)
        outer = self._wrapper_redirects(node)
        if words is None or inner is None or outer is None:
            return None
        assignments = [word.word for word in words if word.flags & WordFlag.ASSIGNMENT]
        return SimpleCommand(
            line=_effective_line(value.line, node.line),
            words=[word for word in words if not word.flags & WordFlag.ASSIGNMENT],
            redirects=inner + outer,
            assignments=assignments or None,
        )

    def _connection(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, Connection)
        if value is None:
            return None
        if value.connector == Connector.PIPE:
            return self._pipeline(node, value, depth)
        op = _LIST_OPS.get(value.connector) if isinstance(value.connector, int) else None
        if op is None:
            logger.debug(f'unknown connector {value.connector!r}')
            return None
        left = self.command(value.first, depth + 1)
        if left is None:
            return None
        if value.second is None and op == 'background':
            right: Command | None = empty_command()
        else:
            right = self.command(value.second, depth + 1)
        if right is None:
            return None
        return CommandList(op=op, left=left, right=right)

    def _pipeline(self, node: ForeignCommand, value: Connection, depth: int) -> Command | None:
        stages: list[Command] = []
        for side in (value.first, value.second):
            stage = self.command(side, depth + 1)
            if stage is None:
                return None
            if isinstance(stage, Pipeline):
                stages.extend(stage.commands)
            else:
                stages.append(stage)
        return Pipeline(commands=stages, negated=bool(node.flags & CMD_INVERT_RETURN))

    def _for(self, node: ForeignCommand, depth: int) -> Command | None:
        return self._iteration(node, depth, ForCom, ForLoop)

    def _select(self, node: ForeignCommand, depth: int) -> Command | None:
        return self._iteration(node, depth, SelectCom, SelectCommand)

    def _iteration(
        self,
        node: ForeignCommand,
        depth: int,
        payload: type[ForCom | SelectCom],
        model: type[ForLoop | SelectCommand],
    ) -> Command | None:
        value = self._payload(node, payload)
        if value is None:
            return None
        if value.name is None:
            logger.debug('loop without a variable name')
            return None
        words = None
        if value.map_list is not None:
            words = self._strings(value.map_list)
            if words is None:
                return None
        body = self.command(value.action, depth + 1)
        redirects = self._wrapper_redirects(node)
        if body is None or redirects is None:
            return None
        return model(
            line=_effective_line(value.line, node.line),
            variable=_text(value.name),
            words=words,
            body=body,
            redirects=redirects,
        )

    def _while(self, node: ForeignCommand, depth: int) -> Command | None:
        return self._loop(node, depth, WhileLoop)

    def _until(self, node: ForeignCommand, depth: int) -> Command | None:
        return self._loop(node, depth, UntilLoop)

    def _loop(self, node: ForeignCommand, depth: int, model: type[WhileLoop | UntilLoop]) -> Command | None:
        value = self._payload(node, WhileCom)
        if value is None:
            return None
        test = self.command(value.test, depth + 1)
        if test is None:
            return None
        body = self.command(value.action, depth + 1)
        redirects = self._wrapper_redirects(node)
        if body is None or redirects is None:
            return None
        return model(line=_line(node.line), test=test, body=body, redirects=redirects)

    def _if(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, IfCom)
        if value is None:
            return None
        condition = self.command(value.test, depth + 1)
        if condition is None:
            return None
        then_branch = self.command(value.true_case, depth + 1)
        if then_branch is None:
            return None
        else_branch = None
        if value.false_case is not None:
            else_branch = self.command(value.false_case, depth + 1)
            if else_branch is None:
                return None
        redirects = self._wrapper_redirects(node)
        if redirects is None:
            return None
        return IfCommand(
            line=_line(node.line),
            condition=condition,
            then_branch=then_branch,
            else_branch=else_branch,
            redirects=redirects,
        )

    def _case(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, CaseCom)
        if value is None:
            return None
        if value.word is None:
            logger.debug('case without a subject word')
            return None
        pattern_lists = self._bounded(value.clauses, 'case clause')
        if pattern_lists is None:
            return None
        clauses = []
        for pattern_list in pattern_lists:
            if not isinstance(pattern_list, PatternList):
                logger.debug(f'not a case clause: {type(pattern_list).__name__}')
                return None
            if not isinstance(pattern_list.flags, int):
                logger.debug(f'case clause flags are {type(pattern_list.flags).__name__}, not int')
                return None
            patterns = self._strings(pattern_list.patterns)
            if patterns is None:
                return None
            action = None
            if pattern_list.action is not None:
                action = self.command(pattern_list.action, depth + 1)
                if action is None:
                    return None
            flags = None
            if pattern_list.flags & (CASEPAT_FALLTHROUGH | CASEPAT_TESTNEXT):
                flags = CaseClauseFlags(
                    fallthrough=bool(pattern_list.flags & CASEPAT_FALLTHROUGH),
                    test_next=bool(pattern_list.flags & CASEPAT_TESTNEXT),
                )
            clauses.append(CaseClause(patterns=patterns, action=action, flags=flags))
        redirects = self._wrapper_redirects(node)
        if redirects is None:
            return None
        return CaseCommand(
            line=_effective_line(value.line, node.line),
            word=_text(value.word),
            clauses=clauses,
            redirects=redirects,
        )

    def _group(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, GroupCom)
        if value is None:
            return None
        body = self.command(value.command, depth + 1)
        redirects = self._wrapper_redirects(node)
        if body is None or redirects is None:
            return None
        return Group(line=_line(node.line), body=body, redirects=redirects)

    def _subshell(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, SubshellCom)
        if value is None:
            return None
        body = self.command(value.command, depth + 1)
        redirects = self._wrapper_redirects(node)
        if body is None or redirects is None:
            return None
        return Subshell(line=_effective_line(value.line, node.line), body=body, redirects=redirects)

    def _function_def(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, FunctionDefCom)
        if value is None:
            return None
        if value.name is None:
            logger.debug('function definition without a name')
            return None
        body = self.command(value.command, depth + 1)
        if body is None:
            return None
        return FunctionDef(
            line=_effective_line(value.line, node.line),
            name=_text(value.name),
            body=body,
            source_file=value.source_file,
        )

    def _arith(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, ArithCom)
        if value is None:
            return None
        expression = self._joined(value.exp)
        redirects = self._wrapper_redirects(node)
        if expression is None or redirects is None:
            return None
        return Arithmetic(line=_effective_line(value.line, node.line), expression=expression, redirects=redirects)

    def _arith_for(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, ArithForCom)
        if value is None:
            return None
        init, test, step = self._joined(value.init), self._joined(value.test), self._joined(value.step)
        if init is None or test is None or step is None:
            return None
        body = self.command(value.action, depth + 1)
        redirects = self._wrapper_redirects(node)
        if body is None or redirects is None:
            return None
        return ArithmeticFor(
            line=_effective_line(value.line, node.line),
            init=init,
            test=test,
            step=step,
            body=body,
            redirects=redirects,
        )

    def _cond_command(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, CondCom)
        if value is None:
            return None
        expr = self._cond(value, depth + 1)
        redirects = self._wrapper_redirects(node)
        if expr is None or redirects is None:
            return None
        return Conditional(line=_effective_line(value.line, node.line), expr=expr, redirects=redirects)

    def _coproc(self, node: ForeignCommand, depth: int) -> Command | None:
        value = self._payload(node, CoprocCom)
        if value is None:
            return None
        body = self.command(value.command, depth + 1)
        if body is None:
            return None
        return Coproc(line=_line(node.line), name=value.name, body=body)

    # -- [[ ]] expressions ----------------------------------------------------

    def _cond(self, cond: CondCom | None, depth: int) -> ConditionalExpr | None:
        if not isinstance(cond, CondCom):
            logger.debug('missing conditional operand')
            return None
        if not isinstance(cond.flags, int):
            logger.debug(f'conditional flags are {type(cond.flags).__name__}, not int')
            return None
        if depth > self._limits.max_depth:
            logger.debug(f'nesting exceeds {self._limits.max_depth} levels')
            return None
        expr: ConditionalExpr | None
        match cond.type:
            case CondKind.AND | CondKind.OR:
                left = self._cond(cond.left, depth + 1)
                right = self._cond(cond.right, depth + 1) if left is not None else None
                if left is None or right is None:
                    return None
                expr = CondAnd(left=left, right=right) if cond.type == CondKind.AND else CondOr(left=left, right=right)
            case CondKind.UNARY:
                expr = CondUnary(op=_text(cond.op), arg=_operand(cond.left))
            case CondKind.BINARY:
                expr = CondBinary(op=_text(cond.op), left=_operand(cond.left), right=_operand(cond.right))
            case CondKind.TERM:
                expr = CondTerm(word=_text(cond.op))
            case CondKind.EXPR | CondKind.NOT:
                inner = self._cond(cond.left, depth + 1)
                if inner is None:
                    return None
                expr = CondGrouped(expr=inner) if cond.type == CondKind.EXPR else CondNot(expr=inner)
            case _:
                logger.debug(f'unknown conditional node type {cond.type!r}')
                return None
        if cond.flags & CMD_INVERT_RETURN:
            expr = CondNot(expr=expr)
        return expr

    # -- redirects ------------------------------------------------------------

    def _redirects(self, items: Iterable[ForeignRedirect] | None) -> list[Redirect] | None:
        taken = self._bounded(items, 'redirect')
        if taken is None:
            return None
        redirects = []
        for item in taken:
            if not isinstance(item, ForeignRedirect):
                logger.debug(f'not a foreign redirect: {type(item).__name__}')
                return None
            redirect = _redirect(item)
            if redirect is None:
                return None
            redirects.append(redirect)
        return redirects


def _operand(cond: CondCom | None) -> str:
    """Text of a unary/binary operand (a TERM node)."""
    if cond is None:
        return ''
    return _text(cond.op)


def _redirect(item: ForeignRedirect) -> Redirect | None:
    if not all(isinstance(field, int) for field in (item.instruction, item.redirector, item.dest)):
        logger.debug(f'redirect fields are not all int: {item!r}')
        return None
    direction = _DIRECTIONS.get(item.instruction)
    if direction is None:
        logger.debug(f'unknown redirect instruction {item.instruction!r}')
        return None
    default_fd = DEFAULT_SOURCE_FD[direction]
    source_fd = None
    if default_fd is not None and item.redirector >= 0 and item.redirector != default_fd:
        source_fd = int(item.redirector)
    if item.instruction == RedirInstruction.CLOSE_THIS:
        target: FileTarget | FdTarget = FdTarget(fd=-1)
    elif item.instruction in _FD_TARGETS:
        target = FdTarget(fd=int(item.dest))
    else:
        target = FileTarget(name=_text(item.filename))
    return Redirect(direction=direction, source_fd=source_fd, target=target, here_doc_eof=item.here_doc_eof)
