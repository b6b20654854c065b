"""Parser configuration schema.

Input and traversal ceilings for ``BashParser``. The defaults are what the
module-level ``parse`` uses; a JSON file can override them for the CLI.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import pydantic
from pydantic import Field

from bash_ast.schemas.base import StrictModel

__all__ = [
    'CONFIG_PATH',
    'MAX_DEPTH',
    'MAX_LIST_LENGTH',
    'MAX_SCRIPT_SIZE',
    'Limits',
    'ParserConfig',
    'load_config',
    'save_config',
]

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / '.config' / 'bash-ast' / 'config.json'

MAX_SCRIPT_SIZE = 10 * 1024 * 1024  # bytes of UTF-8
MAX_DEPTH = 256
MAX_LIST_LENGTH = 100_000


@dataclass(frozen=True, slots=True)
class Limits:
    """Ceilings for one normalizer pass."""

    max_depth: int = MAX_DEPTH
    max_list_length: int = MAX_LIST_LENGTH


class ParserConfig(StrictModel):
    """Limits applied by ``BashParser``.

    ``max_script_size`` is checked before the ShellParser runs; the other two
    bound the normalizer's walk over the ShellParser's tree.
    """

    max_script_size: Annotated[int, Field(gt=0)] = MAX_SCRIPT_SIZE
    max_depth: Annotated[int, Field(gt=0)] = MAX_DEPTH
    max_list_length: Annotated[int, Field(gt=0)] = MAX_LIST_LENGTH

    @classmethod
    def default(cls) -> ParserConfig:
        return cls()

    def limits(self) -> Limits:
        return Limits(max_depth=self.max_depth, max_list_length=self.max_list_length)


def load_config(path: Path = CONFIG_PATH) -> ParserConfig:
    """Load config from ``path``, or the defaults if the file does not exist.

    Raises:
        ValueError: If the file exists but is invalid.
    """
    if not path.exists():
        return ParserConfig.default()

    try:
        return ParserConfig.model_validate(json.loads(path.read_text()))
    except (json.JSONDecodeError, pydantic.ValidationError) as e:
        raise ValueError(f'Invalid config file at {path}: {e}') from e


def save_config(config: ParserConfig, path: Path = CONFIG_PATH) -> None:
    """Save config to ``path``, creating parent directories if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.model_dump(mode='json'), indent=2) + '\n')
    logger.info(f'Saved parser config to {path}: max_depth={config.max_depth}')
