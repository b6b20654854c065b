"""Pydantic schemas: the shell AST and the parser configuration."""

from __future__ import annotations

from bash_ast.schemas.ast import (
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
    RedirectTarget,
    RedirectType,
    SelectCommand,
    SimpleCommand,
    Subshell,
    UntilLoop,
    WhileLoop,
    Word,
    WordFlag,
    command_from_json,
    command_schema,
    command_to_dict,
    command_to_json,
)
from bash_ast.schemas.base import StrictModel
from bash_ast.schemas.config import ParserConfig, load_config, save_config

__all__ = [
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
    'ParserConfig',
    'Pipeline',
    'Redirect',
    'RedirectTarget',
    'RedirectType',
    'SelectCommand',
    'SimpleCommand',
    'StrictModel',
    'Subshell',
    'UntilLoop',
    'WhileLoop',
    'Word',
    'WordFlag',
    'command_from_json',
    'command_schema',
    'command_to_dict',
    'command_to_json',
    'load_config',
    'save_config',
]
