"""
Collection levels - ordered diagnostic depths.

Level 0: read-only metadata (status, variables, schema, OS metrics)
Level 1: windowed log capture (slow log digest, error log alerts)
Level 2: statement sampling (reserved)
Level 3: short-window deep tracing (reserved)
"""

from enum import IntEnum
from typing import List


class CollectionLevel(IntEnum):
    """Ordered collection depth. Negotiation only ever moves downward."""
    UNAVAILABLE = -1
    LEVEL0 = 0
    LEVEL1 = 1
    LEVEL2 = 2
    LEVEL3 = 3

    @property
    def label(self) -> str:
        """Human-readable label used in envelopes ("Level 1", "Unavailable")."""
        if self is CollectionLevel.UNAVAILABLE:
            return "Unavailable"
        return f"Level {int(self)}"

    def __str__(self) -> str:
        return self.label

    def lower(self) -> "CollectionLevel":
        """Next level down; UNAVAILABLE is the floor."""
        if self is CollectionLevel.UNAVAILABLE:
            return self
        return CollectionLevel(int(self) - 1)

    @classmethod
    def parse(cls, value: str) -> "CollectionLevel":
        """
        Parse a level from CLI/config spelling.

        Accepts "level1", "Level 1", "1" and "unavailable".
        """
        text = str(value).strip().lower().replace(" ", "").replace("_", "")
        if text == "unavailable":
            return cls.UNAVAILABLE
        if text.startswith("level"):
            text = text[len("level"):]
        try:
            level = cls(int(text))
        except ValueError:
            raise ValueError(f"unknown collection level: {value!r}")
        if level is cls.UNAVAILABLE:
            raise ValueError(f"unknown collection level: {value!r}")
        return level

    @classmethod
    def descending_from(cls, level: "CollectionLevel") -> List["CollectionLevel"]:
        """Levels from `level` down to LEVEL0, highest first."""
        return [cls(value) for value in range(int(level), -1, -1)]
