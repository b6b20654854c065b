"""Parsing façade: script text in, AST (or JSON) out, and back.

``BashParser`` validates the input, runs the ShellParser, normalizes its tree
and maps every failure onto ``bash_ast.errors``. The ShellParser is treated as
non-reentrant, so each instance serializes its parses behind a lock; the
module-level helpers share one lazily created default instance.
"""

from __future__ import annotations

import functools
import json
import logging
import threading

from bash_ast.bashlex_parser import BashlexShellParser
from bash_ast.errors import (
    ConversionError,
    EmptyInputError,
    InputTooLargeError,
    InterchangeError,
    NulByteError,
)
from bash_ast.foreign import ShellParser
from bash_ast.library_boundary import LibraryBoundary
from bash_ast.normalizer import normalize
from bash_ast.schemas.ast import Command, command_from_json, command_schema, command_to_json
from bash_ast.schemas.config import ParserConfig
from bash_ast.unparser import serialize

__all__ = [
    'BashParser',
    'default_parser',
    'deserialize',
    'parse',
    'parse_to_json',
    'schema_json',
    'serialize',
]

logger = logging.getLogger(__name__)


class BashParser:
    """Parse shell scripts into ``Command`` trees.

    Args:
        config: Input and traversal limits. Defaults to ``ParserConfig.default()``.
        shell_parser: The grammar engine. Defaults to bashlex.
    """

    def __init__(self, config: ParserConfig | None = None, shell_parser: ShellParser | None = None) -> None:
        self._config = config or ParserConfig.default()
        self._shell_parser = shell_parser or BashlexShellParser()
        self._lock = threading.Lock()

    @property
    def config(self) -> ParserConfig:
        return self._config

    def parse(self, script: str) -> Command:
        """Parse ``script``.

        Raises:
            InputTooLargeError: Script exceeds ``max_script_size`` bytes.
            EmptyInputError: Script is empty or whitespace only.
            NulByteError: Script contains a NUL byte.
            ShellSyntaxError: The ShellParser rejected the script.
            ConversionError: The parse tree could not be converted.
        """
        self._validate(script)
        with self._lock:
            tree = self._shell_parser.parse(script)
            command = normalize(tree, limits=self._config.limits())
        if command is None:
            raise ConversionError('parse tree exceeds limits or is malformed (details at DEBUG)')
        return command

    def parse_to_json(self, script: str, *, pretty: bool = True) -> str:
        return command_to_json(self.parse(script), pretty=pretty)

    def serialize(self, command: Command) -> str:
        return serialize(command)

    def _validate(self, script: str) -> None:
        size = len(script.encode('utf-8', errors='surrogatepass'))
        if size > self._config.max_script_size:
            logger.debug(f'rejecting {size} byte script')
            raise InputTooLargeError(size, self._config.max_script_size)
        if not script.strip():
            logger.debug('rejecting empty script')
            raise EmptyInputError()
        if '\x00' in script:
            logger.debug('rejecting script with NUL byte')
            raise NulByteError()


@functools.cache
def default_parser() -> BashParser:
    return BashParser()


def parse(script: str) -> Command:
    """Parse ``script`` with the default parser."""
    return default_parser().parse(script)


def parse_to_json(script: str, *, pretty: bool = True) -> str:
    """Parse ``script`` and return the JSON interchange form of its AST."""
    return default_parser().parse_to_json(script, pretty=pretty)


@LibraryBoundary(InterchangeError)
def deserialize(payload: str | bytes) -> Command:
    """Decode a JSON interchange payload; invalid payloads raise InterchangeError."""
    return command_from_json(payload)


def schema_json(*, pretty: bool = True) -> str:
    """JSON Schema of the interchange format."""
    return json.dumps(command_schema(), indent=2 if pretty else None)
