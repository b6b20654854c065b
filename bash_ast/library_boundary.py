"""Exception translation at third-party library call boundaries.

bashlex reports a syntax error as ``bashlex.errors.ParsingError``, but an
unimplemented construct (``case``, ``$(( ))``, ``[[ ]]`` ...) as a bare
``NotImplementedError``, and some malformed input trips internal asserts.
LibraryBoundary translates whatever escapes a library call into one known type,
keeping the original as ``__cause__``::

    bashlex_call = LibraryBoundary(ShellSyntaxError)

    with bashlex_call:
        trees = bashlex.parse(script)

The translated exception still propagates; handling it is the caller's job
(``bash_ast.parser``), or the CLI's ErrorBoundary at the process edge.
"""

from __future__ import annotations

__all__ = ['LibraryBoundary']

import functools
from collections.abc import Callable
from types import TracebackType
from typing import Any, Self, TypeVar, cast

_F = TypeVar('_F', bound=Callable[..., object])

# Exception subclasses that drive iteration and generator protocols.
_PASSTHROUGH = (StopIteration, StopAsyncIteration, GeneratorExit)


class LibraryBoundary:
    """Translate exceptions from library calls into ``target``.

    Any ``Exception`` that is not already a ``target`` is re-raised as
    ``target(str(exc))`` chained from the original. ``KeyboardInterrupt``,
    ``SystemExit`` and the control-flow exceptions pass through untouched.

    Usable as a context manager or as a decorator::

        @LibraryBoundary(InterchangeError)
        def decode(payload: str) -> Command:
            return command_from_json(payload)

    Args:
        target: Exception type to translate into. Must accept a single string.
    """

    def __init__(self, target: type[Exception]) -> None:
        self._target = target

    def __call__(self, func: _F) -> _F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with self:
                return func(*args, **kwargs)

        return cast(_F, wrapper)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is None or isinstance(exc_val, self._target):
            return  # No exception, or already translated
        if not isinstance(exc_val, Exception) or isinstance(exc_val, _PASSTHROUGH):
            return
        raise self._target(str(exc_val)).with_traceback(exc_tb) from exc_val
