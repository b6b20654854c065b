"""Base schema classes for the shell AST."""

from __future__ import annotations

import pydantic

__all__ = [
    'StrictModel',
]


class StrictModel(pydantic.BaseModel):
    """Base model with strict validation and immutability.

    - extra='forbid': unknown keys in an interchange payload are an error
    - strict=True: no coercion, so ``"1"`` is never accepted as a file descriptor
    - frozen=True: nodes are immutable once the normalizer has built them
    """

    model_config = pydantic.ConfigDict(extra='forbid', strict=True, frozen=True)
