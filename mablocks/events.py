"""Normalized input events consumed by the canvas engine.

The rendering layer translates its native pointer and keyboard events into
these dataclasses. Pointer coordinates are already in canvas space.
"""

from dataclasses import dataclass
from enum import Enum, auto


class PointerButton(Enum):
    """Pointer button identifiers."""
    PRIMARY = auto()
    SECONDARY = auto()
    MIDDLE = auto()


@dataclass
class PointerEvent:
    """Pointer event data.

    Attributes:
        x: X coordinate in canvas space
        y: Y coordinate in canvas space
        button: Button pressed or released (None for plain moves)
        modifiers: Active modifier keys during event
    """
    x: float
    y: float
    button: PointerButton | None = None
    modifiers: frozenset[str] = frozenset()

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    @property
    def is_primary(self) -> bool:
        return self.button == PointerButton.PRIMARY

    @property
    def is_secondary(self) -> bool:
        return self.button == PointerButton.SECONDARY


@dataclass
class KeyEvent:
    """Keyboard event data.

    Attributes:
        key: Key identifier (e.g., 'a', 'escape', 'delete')
        modifiers: Active modifier keys
    """
    key: str
    modifiers: frozenset[str] = frozenset()

    @property
    def ctrl(self) -> bool:
        """Whether Ctrl/Command is held."""
        return 'ctrl' in self.modifiers or 'cmd' in self.modifiers

    @property
    def shift(self) -> bool:
        """Whether Shift is held."""
        return 'shift' in self.modifiers
