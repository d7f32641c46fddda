# MaBlocks - Geometry
"""
Axis-aligned rectangle primitive used by the block registry and the layout
solver, plus the resize handles of a block.

All coordinates are canvas-space floats. Rectangles are treated as values:
every transforming method returns a new instance.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ResizeHandle(Enum):
    """Corner grabbed when resizing a block."""
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"

    @property
    def is_left(self) -> bool:
        return self in (ResizeHandle.TOP_LEFT, ResizeHandle.BOTTOM_LEFT)

    @property
    def is_top(self) -> bool:
        return self in (ResizeHandle.TOP_LEFT, ResizeHandle.TOP_RIGHT)


@dataclass
class Rectangle:
    """Axis-aligned rectangle (x, y, width, height)."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_min_max(cls, x1: float, y1: float, x2: float, y2: float) -> Rectangle:
        return cls(x=x1, y=y1, width=x2 - x1, height=y2 - y1)

    @property
    def x2(self) -> float:
        """Right edge x coordinate."""
        return self.x + self.width

    @property
    def y2(self) -> float:
        """Bottom edge y coordinate."""
        return self.y + self.height

    @property
    def center(self) -> tuple[float, float]:
        """Center point of the rectangle."""
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        """Area of the rectangle."""
        return self.width * self.height

    def translated(self, dx: float, dy: float) -> Rectangle:
        """Return a copy moved by (dx, dy)."""
        return Rectangle(self.x + dx, self.y + dy, self.width, self.height)

    def expanded(self, margin: float) -> Rectangle:
        """Return a copy grown by ``margin`` on every side."""
        return Rectangle(
            self.x - margin,
            self.y - margin,
            self.width + 2 * margin,
            self.height + 2 * margin,
        )

    def penetration(self, other: Rectangle, gap: float = 0.0) -> tuple[float, float]:
        """Penetration depth along x and y including the required gap.

        Both values are positive only if the rectangles are closer than
        ``gap`` on both axes. The smaller positive value is the length of the
        minimum translation that separates them.

        :param other: The rectangle to test against
        :param gap: Distance the rectangles have to keep
        :return: (depth_x, depth_y)
        """
        depth_x = min(self.x2 + gap - other.x, other.x2 + gap - self.x)
        depth_y = min(self.y2 + gap - other.y, other.y2 + gap - self.y)
        return (depth_x, depth_y)

    def intersects(self, other: Rectangle, gap: float = 0.0, tolerance: float = 0.0) -> bool:
        """Whether the rectangles overlap (closer than ``gap``) by more than ``tolerance``."""
        depth_x, depth_y = self.penetration(other, gap)
        return depth_x > tolerance and depth_y > tolerance

    def contains(self, px: float, py: float) -> bool:
        """Whether the point lies inside the rectangle (edges included)."""
        return self.x <= px <= self.x2 and self.y <= py <= self.y2

    def clamped(self, extent: float) -> Rectangle:
        """Return a copy shifted into the square [-extent, extent]."""
        x = min(max(self.x, -extent), extent - self.width)
        y = min(max(self.y, -extent), extent - self.height)
        return Rectangle(x, y, self.width, self.height)

    def to_tuple(self) -> tuple[float, float, float, float]:
        """Return as (x, y, width, height) tuple."""
        return (self.x, self.y, self.width, self.height)

    def to_dict(self) -> dict:
        return {
            'x': self.x, 'y': self.y,
            'width': self.width, 'height': self.height
        }

    @classmethod
    def from_dict(cls, data: dict) -> Rectangle:
        return cls(
            x=data['x'], y=data['y'],
            width=data['width'], height=data['height'],
        )
