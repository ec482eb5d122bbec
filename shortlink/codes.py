"""Short code generation and well-formedness checks.

Generated codes are drawn uniformly from a 62-character alphabet. The source
of randomness is pluggable so that collision handling in the service layer can
be exercised deterministically::

    generator = ShortCodeGenerator()                       # nanoid-backed
    generator = ShortCodeGenerator(source=SeededSource(7)) # reproducible

Key Behaviours
===============
- ``generate_candidate()`` has no side effects and never touches a store.
- ``is_well_formed()`` accepts 6-10 characters over the alphabet only, and is
  meant to run before any cache or store lookup.
- A configured length outside 6-10 raises ``ValueError`` when the generator is
  built; individual calls never fail.
"""

import random
import re
from typing import Callable

from nanoid import generate

__all__ = [
    "ALPHABET",
    "MIN_CODE_LENGTH",
    "MAX_CODE_LENGTH",
    "DEFAULT_CODE_LENGTH",
    "SeededSource",
    "ShortCodeGenerator",
    "is_well_formed",
]

ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
MIN_CODE_LENGTH = 6
MAX_CODE_LENGTH = 10
DEFAULT_CODE_LENGTH = 7

_WELL_FORMED = re.compile(rf"^[a-zA-Z0-9]{{{MIN_CODE_LENGTH},{MAX_CODE_LENGTH}}}$")

# (alphabet, size) -> code
RandomSource = Callable[[str, int], str]


class SeededSource:
    """Deterministic random source backed by ``random.Random``."""

    def __init__(self, seed: int | str | None = None) -> None:
        self._rng = random.Random(seed)

    def __call__(self, alphabet: str, size: int) -> str:
        return "".join(self._rng.choice(alphabet) for _ in range(size))


def _nanoid_source(alphabet: str, size: int) -> str:
    return generate(alphabet, size)


def is_well_formed(code: str | None) -> bool:
    if not isinstance(code, str):
        return False
    return _WELL_FORMED.fullmatch(code) is not None


class ShortCodeGenerator:
    def __init__(self, length: int = DEFAULT_CODE_LENGTH, source: RandomSource | None = None) -> None:
        if not isinstance(length, int) or not MIN_CODE_LENGTH <= length <= MAX_CODE_LENGTH:
            raise ValueError(
                f"short code length must be between {MIN_CODE_LENGTH} and {MAX_CODE_LENGTH}, got {length!r}"
            )
        self.length = length
        self._source = source or _nanoid_source

    def generate_candidate(self) -> str:
        return self._source(ALPHABET, self.length)

    @staticmethod
    def is_well_formed(code: str | None) -> bool:
        return is_well_formed(code)
