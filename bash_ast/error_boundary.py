"""Process-edge error handling for the ``bash-ast`` command.

An ErrorBoundary wraps an entry point, dispatches any application exception
escaping it to a handler registered for its type (``functools.singledispatch``,
matched by MRO), then exits with a non-zero status. ``KeyboardInterrupt`` and
``SystemExit`` are not application errors and always pass through::

    boundary = ErrorBoundary()

    @boundary.handler(BashAstError)
    def report(exc: BashAstError) -> None:
        print(f'bash-ast: {exc}', file=sys.stderr)

    @boundary
    def main() -> None:
        ...

Unhandled types fall back to printing the traceback to stderr.
"""

from __future__ import annotations

__all__ = [
    'ErrorBoundary',
    'ErrorHandler',
]

import functools
import sys
import traceback
from collections.abc import Callable
from functools import singledispatch
from types import TracebackType
from typing import Any, Self, TypeVar, cast

type ErrorHandler = Callable[[Exception], None]

_F = TypeVar('_F', bound=Callable[..., object])


class ErrorBoundary:
    """Catch application exceptions, report them, exit.

    Args:
        handler: Catch-all handler, equivalent to ``@boundary.handler(Exception)``.
            Defaults to printing the traceback to stderr.
        exit_code: Exit status after handling. ``None`` suppresses the
            exception and lets execution continue.
    """

    def __init__(
        self,
        *,
        handler: ErrorHandler | None = None,
        exit_code: int | None = 1,
    ) -> None:
        self._dispatch = singledispatch(_default_handler)
        if handler is not None:
            self._dispatch.register(Exception, handler)
        self._exit_code = exit_code

    def handler(self, exc_type: type[Exception]) -> Callable[[Callable[..., None]], Callable[..., None]]:
        """Register a handler for ``exc_type`` and its subclasses."""
        return self._dispatch.register(exc_type)

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
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        if not isinstance(exc_value, Exception):
            return False

        try:
            self._dispatch(exc_value)
        except Exception:
            try:  # noqa: SIM105
                _default_handler(exc_value)
            except Exception:
                pass  # stderr itself is broken; still honor the exit code

        if self._exit_code is not None:
            sys.exit(self._exit_code)

        return True


def _default_handler(exc: Exception) -> None:
    """Print exception with traceback to stderr."""
    traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
