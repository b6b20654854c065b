"""Exceptions raised by the parsing façade and the interchange helpers.

The normalizer and the unparser never raise; everything here is reported by
``bash_ast.parser`` (input validation, ShellParser failures, conversion
failures) or by JSON interchange decoding.
"""

from __future__ import annotations

__all__ = [
    'BashAstError',
    'ConversionError',
    'EmptyInputError',
    'InputTooLargeError',
    'InterchangeError',
    'NulByteError',
    'ShellSyntaxError',
]


class BashAstError(Exception):
    """Base class for every error this package raises."""


class ShellSyntaxError(BashAstError):
    """The ShellParser rejected the script.

    Also raised for constructs the ShellParser does not implement, so callers
    see one error type for "this text could not be parsed".
    """

    def __init__(self, diagnostic: str | None = None) -> None:
        self.diagnostic = diagnostic
        super().__init__(f'Syntax error in script: {diagnostic}' if diagnostic else 'Syntax error in script')


class ConversionError(BashAstError):
    """The script parsed, but its tree could not be converted to the AST."""

    def __init__(self, diagnostic: str | None = None) -> None:
        self.diagnostic = diagnostic
        super().__init__(
            f'Failed to convert parse tree: {diagnostic}' if diagnostic else 'Failed to convert parse tree'
        )


class EmptyInputError(BashAstError):
    def __init__(self) -> None:
        super().__init__('Script is empty or contains only whitespace')


class InputTooLargeError(BashAstError):
    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f'Script is {size} bytes, larger than the {limit} byte limit')


class NulByteError(BashAstError):
    def __init__(self) -> None:
        super().__init__('Script contains a NUL byte')


class InterchangeError(BashAstError):
    """A JSON AST payload is malformed or does not match the schema."""
