from __future__ import annotations

from enum import Enum
from typing import Any


class FlagColor(Enum):
    """Target colours and the filtered colour-sensor value each one reads as."""

    NONE = -1.0
    RED = 0.00
    BLUE = 0.07
    YELLOW = 0.03
    WHITE = 0.06

    @property
    def signature(self) -> float:
        return float(self.value)

    def matches(self, reading: float, tolerance: float) -> bool:
        if self is FlagColor.NONE:
            return False
        return (self.signature - tolerance) <= float(reading) <= (self.signature + tolerance)

    @classmethod
    def from_code(cls, code: int) -> "FlagColor":
        # Game server codes: 1=red, 2=blue, 3=yellow, 4=white.
        members = list(cls)
        if code < 1 or code >= len(members):
            raise ValueError(f"Unknown flag colour code: {code}")
        return members[code]

    @classmethod
    def parse(cls, raw: Any) -> "FlagColor":
        if isinstance(raw, FlagColor):
            return raw
        if isinstance(raw, bool):
            raise ValueError(f"Invalid flag colour: {raw!r}")
        if isinstance(raw, int):
            return cls.from_code(raw)
        name = str(raw).strip().upper()
        if name in cls.__members__:
            return cls.__members__[name]
        raise ValueError(f"Invalid flag colour: {raw!r}")
