"""
Seed handling and discrete random choices.

A generation run is fully determined by its Seed. Continuous spatial fields
come from NoiseGenerator streams derived from the seed; discrete choices
(for example picking a formation from a candidate list) come from the
linear-congruential SeededRandom below. Python's random and NumPy's random
are not used by the pipeline.
"""

from dataclasses import dataclass
from numbers import Integral
from typing import Union


def _hash_string(text: str) -> int:
    """31-multiplier string hash over UTF-16 code units, wrapped to int32."""
    data = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        code_unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + code_unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


@dataclass(frozen=True)
class Seed:
    """Validated generation seed."""

    value: int

    MIN_VALUE = 1
    MAX_VALUE = 2147483647
    DEFAULT_VALUE = 42

    @classmethod
    def from_number(cls, value) -> "Seed":
        from ..core.errors import InvalidSeedError

        if isinstance(value, bool):
            raise InvalidSeedError.invalid_type(value)
        if isinstance(value, float):
            if not value.is_integer():
                raise InvalidSeedError.invalid_type(value)
            value = int(value)
        if not isinstance(value, Integral):
            raise InvalidSeedError.invalid_type(value)
        value = int(value)
        if value < cls.MIN_VALUE or value > cls.MAX_VALUE:
            raise InvalidSeedError.out_of_range(value, cls.MIN_VALUE, cls.MAX_VALUE)
        return cls(value)

    @classmethod
    def from_string(cls, text: str) -> "Seed":
        """
        Hash a string into a seed.

        Leading and trailing whitespace is ignored, so " forest " and
        "forest" produce the same seed.
        """
        from ..core.errors import InvalidSeedError

        if not isinstance(text, str):
            raise InvalidSeedError.invalid_type(text)
        stripped = text.strip()
        if not stripped:
            raise InvalidSeedError.empty_string()
        return cls(abs(_hash_string(stripped)) % cls.MAX_VALUE + 1)

    @classmethod
    def from_value(cls, value: Union[int, str, None]) -> "Seed":
        if value is None:
            return cls.default()
        if isinstance(value, str):
            return cls.from_string(value)
        return cls.from_number(value)

    @classmethod
    def default(cls) -> "Seed":
        return cls(cls.DEFAULT_VALUE)

    def derive(self, multiplier: int) -> int:
        """Stream constant for an independent noise stream."""
        return self.value * multiplier

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


class SeededRandom:
    """Linear congruential generator for discrete choices."""

    MODULUS_MASK = 0x7FFFFFFF

    def __init__(self, seed: Union[Seed, int]):
        self.state = int(seed) & self.MODULUS_MASK

    def next_int(self) -> int:
        self.state = (self.state * 1103515245 + 12345) & self.MODULUS_MASK
        return self.state

    def next(self) -> float:
        """Next value in [0, 1]."""
        return self.next_int() / self.MODULUS_MASK

    def choice_index(self, n: int) -> int:
        """Index in [0, n) for a list of length n."""
        if n <= 0:
            raise ValueError("Cannot choose from an empty sequence")
        return min(int(self.next() * n), n - 1)

    def chance(self, probability: float) -> bool:
        return self.next() < probability
