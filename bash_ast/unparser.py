"""Canonical AST -> shell source.

``serialize`` is total: every Command renders, and re-parsing the output gives
back an equal tree once line numbers are erased. Formatting is normalized
(single spaces, ``; `` between statements); comments and original layout are
not reproduced.

Here-documents are the one place where layout carries meaning. The ``<<EOF``
marker is written inline, while the body and its closing delimiter are queued
and written out at the next statement boundary: a ``;``/``&``/newline
separator, a closing or continuation keyword (``do``, ``then``, ``done``,
``fi``, ``}``, ``)``, ``;;`` ...) or the end of the text. Operators that join
commands within one statement (``|``, ``&&``, ``||``) never flush the queue.
"""

from __future__ import annotations

from collections.abc import Mapping

from bash_ast.schemas.ast import (
    DECLARATION_BUILTINS,
    DEFAULT_SOURCE_FD,
    Arithmetic,
    ArithmeticFor,
    CaseClause,
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
    Pipeline,
    Redirect,
    SelectCommand,
    SimpleCommand,
    Subshell,
    UntilLoop,
    WhileLoop,
    heredoc_delimiter,
    is_placeholder,
    redirects_of,
)

__all__ = [
    'conditional_text',
    'serialize',
]

DEFAULT_COPROC_NAME = 'COPROC'

_OPERATORS: Mapping[str, str] = {
    'input': '<',
    'output': '>',
    'append': '>>',
    'here_doc': '<<',
    'here_string': '<<<',
    'input_output': '<>',
    'clobber': '>|',
    'dup_input': '<&',
    'dup_output': '>&',
    'close': '>&',
    'err_and_out': '&>',
    'append_err_and_out': '&>>',
    'move_input': '<&',
    'move_output': '>&',
}


def serialize(command: Command) -> str:
    """Render ``command`` as shell source."""
    writer = _Writer()
    writer.command(command)
    return writer.finish()


def conditional_text(expr: ConditionalExpr) -> str:
    """Body of a ``[[ ... ]]`` test."""
    match expr:
        case CondUnary():
            return f'{expr.op} {expr.arg}'
        case CondBinary():
            return f'{expr.left} {expr.op} {expr.right}'
        case CondAnd():
            left = _cond_operand(expr.left, CondOr)
            return f'{left} && {_cond_operand(expr.right, CondOr, CondAnd)}'
        case CondOr():
            return f'{conditional_text(expr.left)} || {_cond_operand(expr.right, CondOr)}'
        case CondNot():
            return f'! {_cond_operand(expr.expr, CondAnd, CondOr)}'
        case CondTerm():
            return expr.word
        case CondGrouped():
            return f'( {conditional_text(expr.expr)} )'


def _cond_operand(expr: ConditionalExpr, *looser: type[CondAnd | CondOr]) -> str:
    """Operand text, parenthesized when its operator binds looser than the enclosing one."""
    text = conditional_text(expr)
    return f'( {text} )' if isinstance(expr, looser) else text


def _fd_prefix(redirect: Redirect) -> str:
    default_fd = DEFAULT_SOURCE_FD[redirect.direction]
    if default_fd is None or redirect.source_fd is None or redirect.source_fd == default_fd:
        return ''
    return str(redirect.source_fd)


def _target_text(redirect: Redirect) -> str:
    if isinstance(redirect.target, FdTarget):
        return str(redirect.target.fd)
    return redirect.target.name


def _attached_target(redirect: Redirect) -> str:
    text = _target_text(redirect)
    # a leading < or > would fuse with the operator
    return ' ' + text if text.startswith(('<', '>')) else text


class _Writer:
    """Output buffer plus the queue of here-documents awaiting their body."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._pending: list[Redirect] = []
        # The last thing written was a trailing ``&``, which already ends the statement.
        self._after_background = False

    def write(self, text: str) -> None:
        if text:
            self._parts.append(text)
            self._after_background = False

    def finish(self) -> str:
        if self._pending:
            self._write_heredocs()
        return ''.join(self._parts)

    def _write_heredocs(self) -> None:
        for redirect in self._pending:
            body = redirect.target.name if isinstance(redirect.target, FileTarget) else ''
            if body and not body.endswith('\n'):
                body += '\n'
            self.write('\n' + body + heredoc_delimiter(redirect.here_doc_eof or 'EOF'))
        self._pending.clear()

    def end_statement(self, keyword: str = '', separator: str = '; ') -> None:
        """Terminate the current statement, then write ``keyword``.

        ``separator`` is what normally sits between the statement and the
        keyword. Pending here-documents replace it with their bodies and a
        newline; a trailing ``&`` replaces it with a single space.
        """
        if self._pending:
            self._write_heredocs()
            self.write('\n' + keyword)
        elif self._after_background:
            self._after_background = False
            if keyword:
                self.write(' ' + keyword)
            else:
                self.write(' ')
        else:
            self.write(separator + keyword)

    # -- commands -----------------------------------------------------------

    def command(self, command: Command) -> None:
        match command:
            case SimpleCommand():
                self._simple(command)
            case Pipeline():
                self._pipeline(command)
            case CommandList():
                self._list(command)
            case ForLoop() | SelectCommand():
                keyword = 'for' if isinstance(command, ForLoop) else 'select'
                self.write(f'{keyword} {command.variable}')
                if command.words is not None:
                    self.write(' in' + ''.join(f' {word}' for word in command.words))
                self._do_done(command.body)
            case WhileLoop() | UntilLoop():
                self.write('while ' if isinstance(command, WhileLoop) else 'until ')
                self.command(command.test)
                self._do_done(command.body)
            case IfCommand():
                self._if(command)
            case CaseCommand():
                self._case(command)
            case Group():
                self.write('{ ')
                self.command(command.body)
                self.end_statement('}')
            case Subshell():
                self.write('(')
                self.command(command.body)
                self.end_statement(')', separator='')
            case FunctionDef():
                self.write(f'{command.name}() ')
                self.command(command.body)
            case Arithmetic():
                self.write(f'(({command.expression}))')
            case ArithmeticFor():
                self.write(f'for (({command.init}; {command.test}; {command.step}))')
                self._do_done(command.body)
            case Conditional():
                self.write(f'[[ {conditional_text(command.expr)} ]]')
            case Coproc():
                self._coproc(command)
        if not isinstance(command, SimpleCommand):
            for redirect in redirects_of(command):
                self.write(' ' + self._redirect(redirect))

    def _simple(self, command: SimpleCommand) -> None:
        words = [word.word for word in command.words]
        assignments = list(command.assignments or ())
        if assignments and words and words[0] in DECLARATION_BUILTINS:
            split = 1
            while split < len(words) and words[split][:1] in ('-', '+'):
                split += 1
            items = words[:split] + assignments + words[split:]
        else:
            items = assignments + words
        items.extend(self._redirect(redirect) for redirect in command.redirects)
        self.write(' '.join(items))

    def _pipeline(self, pipeline: Pipeline) -> None:
        if pipeline.negated:
            self.write('! ')
        for index, stage in enumerate(pipeline.commands):
            if index:
                self.write(' | ')
            self.command(stage)

    def _list(self, command: CommandList) -> None:
        self.command(command.left)
        match command.op:
            case 'and' | 'or':
                self.write(' && ' if command.op == 'and' else ' || ')
                self.command(command.right)
            case 'semicolon':
                self.end_statement()
                self.command(command.right)
            case 'newline':
                self.end_statement(separator='\n')
                self.command(command.right)
            case 'background':
                self.write(' &')
                self._after_background = True
                if not is_placeholder(command.right):
                    self.end_statement()
                    self.command(command.right)

    def _do_done(self, body: Command) -> None:
        self.end_statement('do ')
        self.command(body)
        self.end_statement('done')

    def _if(self, command: IfCommand) -> None:
        self.write('if ')
        self.command(command.condition)
        self.end_statement('then ')
        self.command(command.then_branch)
        branch = command.else_branch
        # An elif is a nested if without wrapper redirects of its own.
        while isinstance(branch, IfCommand) and not branch.redirects:
            self.end_statement('elif ')
            self.command(branch.condition)
            self.end_statement('then ')
            self.command(branch.then_branch)
            branch = branch.else_branch
        if branch is not None:
            self.end_statement('else ')
            self.command(branch)
        self.end_statement('fi')

    def _case(self, command: CaseCommand) -> None:
        self.write(f'case {command.word} in ')
        for clause in command.clauses:
            self.write('|'.join(clause.patterns) + ') ')
            if clause.action is not None:
                self.command(clause.action)
            self.end_statement(_clause_terminator(clause), separator='')
            self.write(' ')
        self.write('esac')

    def _coproc(self, command: Coproc) -> None:
        self.write('coproc ')
        if command.name is not None and not (
            command.name == DEFAULT_COPROC_NAME and isinstance(command.body, SimpleCommand)
        ):
            self.write(command.name + ' ')
        self.command(command.body)

    def _redirect(self, redirect: Redirect) -> str:
        prefix = _fd_prefix(redirect) + _OPERATORS[redirect.direction]
        match redirect.direction:
            case 'here_doc':
                self._pending.append(redirect)
                return prefix + (redirect.here_doc_eof or 'EOF')
            case 'close':
                return prefix + '-'
            case 'dup_input' | 'dup_output':
                return prefix + _attached_target(redirect)
            case 'move_input' | 'move_output':
                return prefix + _attached_target(redirect) + '-'
            case _:
                return f'{prefix} {_target_text(redirect)}'


def _clause_terminator(clause: CaseClause) -> str:
    if clause.flags is None:
        return ';;'
    if clause.flags.test_next:
        return ';;&'
    if clause.flags.fallthrough:
        return ';&'
    return ';;'

