"""
Iterative overlap solver for block rectangles.

The solver performs positional correction: every pair of rectangles closer
than the collision gap is pushed apart along the axis of least penetration.
The push is split by mobility. Anchored rectangles (the block or chain the
user just dragged) do not move; everything else absorbs the correction.
Rectangles grouped into one body move rigidly when pushed by an outside
rectangle. Members of one body that overlap each other (after a resize or a
restore) are pushed apart one by one, and the member the caller anchored
stays put.

Bodies are clamped into the canvas square as a whole, so their internal
offsets survive the clamp.

Iteration stops when the deepest remaining penetration is below epsilon or the
iteration budget is spent. In the latter case the least-bad layout seen is
returned; the next interaction retries.

Example:
    solver = GeometrySolver(gap=2.0)
    result = solver.resolve(registry.rects(), anchored={dragged_id})
    registry.apply_rects(result.rects)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

from mablocks.geometry import Rectangle, ResizeHandle

logger = logging.getLogger(__name__)


@dataclass
class SolverResult:
    """Outcome of a solver run.

    :param rects: Resolved rectangles for every input id
    :param iterations: Number of correction passes performed
    :param max_depth: Deepest remaining penetration
    :param converged: Whether max_depth is within epsilon
    :param moved: Ids whose rectangle differs from the input
    """
    rects: dict[str, Rectangle]
    iterations: int = 0
    max_depth: float = 0.0
    converged: bool = True
    moved: list[str] = field(default_factory=list)


class GeometrySolver:
    """Bounded-iteration overlap resolution.

    :param gap: Distance blocks have to keep from each other
    :param max_iterations: Iteration budget per resolve call
    :param epsilon: Penetration depth treated as resolved
    :param extent: Half edge of the square canvas region rectangles are
        clamped into
    """

    def __init__(
        self,
        gap: float = 2.0,
        max_iterations: int = 64,
        epsilon: float = 0.01,
        extent: float = 1_000_000.0,
    ):
        self.gap = gap
        self.max_iterations = max_iterations
        self.epsilon = epsilon
        self.extent = extent

    def overlapping_pairs(self, rects: dict[str, Rectangle]) -> list[tuple[str, str, float]]:
        """All pairs closer than the gap, with their penetration depth.

        :param rects: Rectangles by id
        :return: List of (id_a, id_b, depth) with id_a < id_b
        """
        pairs = []
        order = sorted(rects)
        for i, a in enumerate(order):
            for b in order[i + 1:]:
                depth_x, depth_y = rects[a].penetration(rects[b], self.gap)
                depth = min(depth_x, depth_y)
                if depth > self.epsilon:
                    pairs.append((a, b, depth))
        return pairs

    def resolve(
        self,
        rects: dict[str, Rectangle],
        bodies: Iterable[Iterable[str]] = (),
        anchored: Iterable[str] = (),
    ) -> SolverResult:
        """Push overlapping rectangles apart.

        :param rects: Rectangles by block id
        :param bodies: Groups of ids which move as one rigid unit
        :param anchored: Ids with zero mobility. Against other bodies the
            whole body of an anchored id is anchored; inside its own body only
            the id itself is.
        :return: The best layout found
        """
        current = dict(rects)
        body_of = self._body_index(current, bodies)
        members: dict[int, list[str]] = {}
        for bid in sorted(current):
            members.setdefault(body_of[bid], []).append(bid)
        anchored_ids = {bid for bid in anchored if bid in body_of}
        anchored_bodies = {body_of[bid] for bid in anchored_ids}
        self._clamp_bodies(current, members)

        best_rects = dict(current)
        best_depth = math.inf
        iterations = 0
        depth = 0.0
        while True:
            depth = self._max_depth(current)
            if depth < best_depth:
                best_depth = depth
                best_rects = dict(current)
            if depth <= self.epsilon or iterations >= self.max_iterations:
                break
            self._relax(current, body_of, members, anchored_ids, anchored_bodies)
            self._clamp_bodies(current, members)
            iterations += 1

        converged = best_depth <= self.epsilon
        if not converged:
            logger.debug(
                f"Solver stopped after {iterations} iterations, "
                f"max depth {best_depth:.2f} (best effort)"
            )
        moved = [bid for bid in sorted(rects) if best_rects[bid] != rects[bid]]
        return SolverResult(
            rects=best_rects,
            iterations=iterations,
            max_depth=best_depth if best_depth != math.inf else 0.0,
            converged=converged,
            moved=moved,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _body_index(
        rects: dict[str, Rectangle],
        bodies: Iterable[Iterable[str]],
    ) -> dict[str, int]:
        body_of: dict[str, int] = {}
        next_body = 0
        for body in bodies:
            ids = [bid for bid in body if bid in rects and bid not in body_of]
            for bid in ids:
                body_of[bid] = next_body
            next_body += 1
        for bid in sorted(rects):
            if bid not in body_of:
                body_of[bid] = next_body
                next_body += 1
        return body_of

    def _max_depth(self, rects: dict[str, Rectangle]) -> float:
        deepest = 0.0
        order = sorted(rects)
        for i, a in enumerate(order):
            for b in order[i + 1:]:
                depth_x, depth_y = rects[a].penetration(rects[b], self.gap)
                if depth_x > 0 and depth_y > 0:
                    deepest = max(deepest, min(depth_x, depth_y))
        return deepest

    def _relax(
        self,
        rects: dict[str, Rectangle],
        body_of: dict[str, int],
        members: dict[int, list[str]],
        anchored_ids: set[str],
        anchored_bodies: set[int],
    ) -> None:
        """One Gauss-Seidel pass over all pairs in id order."""
        order = sorted(rects)
        for i, a in enumerate(order):
            for b in order[i + 1:]:
                rect_a, rect_b = rects[a], rects[b]
                depth_x, depth_y = rect_a.penetration(rect_b, self.gap)
                if depth_x <= self.epsilon or depth_y <= self.epsilon:
                    continue
                body_a, body_b = body_of[a], body_of[b]
                if body_a == body_b:
                    # Members of one body separate individually
                    ids_a, ids_b = [a], [b]
                    mobility_a = 0.0 if a in anchored_ids else 1.0
                    mobility_b = 0.0 if b in anchored_ids else 1.0
                    if mobility_a + mobility_b == 0.0:
                        mobility_a = mobility_b = 1.0
                else:
                    ids_a, ids_b = members[body_a], members[body_b]
                    mobility_a = 0.0 if body_a in anchored_bodies else 1.0
                    mobility_b = 0.0 if body_b in anchored_bodies else 1.0
                total = mobility_a + mobility_b
                if total == 0.0:
                    # Both anchored, only allowed while interacting
                    continue

                center_a, center_b = rect_a.center, rect_b.center
                if depth_x <= depth_y:
                    # b pushed towards +x unless it sits left of a; ties go to the larger id
                    sign = -1.0 if center_b[0] < center_a[0] else 1.0
                    push = (sign * depth_x, 0.0)
                else:
                    sign = -1.0 if center_b[1] < center_a[1] else 1.0
                    push = (0.0, sign * depth_y)

                share_a = mobility_a / total
                share_b = mobility_b / total
                if share_a:
                    self._move_body(rects, ids_a, -push[0] * share_a, -push[1] * share_a)
                if share_b:
                    self._move_body(rects, ids_b, push[0] * share_b, push[1] * share_b)

    @staticmethod
    def _move_body(rects: dict[str, Rectangle], ids: list[str], dx: float, dy: float) -> None:
        for bid in ids:
            rects[bid] = rects[bid].translated(dx, dy)

    def _clamp_bodies(self, rects: dict[str, Rectangle], members: dict[int, list[str]]) -> None:
        """Shift bodies back into the canvas square, keeping their shape."""
        for ids in members.values():
            x1 = min(rects[bid].x for bid in ids)
            y1 = min(rects[bid].y for bid in ids)
            x2 = max(rects[bid].x2 for bid in ids)
            y2 = max(rects[bid].y2 for bid in ids)
            bounds = Rectangle.from_min_max(x1, y1, x2, y2)
            clamped = bounds.clamped(self.extent)
            dx, dy = clamped.x - bounds.x, clamped.y - bounds.y
            if dx or dy:
                self._move_body(rects, ids, dx, dy)


# -----------------------------------------------------------------------------
# Placement and resizing helpers
# -----------------------------------------------------------------------------


def _ring_offsets(ring: int) -> list[tuple[int, int]]:
    """Grid offsets at Chebyshev distance ``ring``, nearest first."""
    if ring == 0:
        return [(0, 0)]
    offsets = [
        (i, j)
        for i in range(-ring, ring + 1)
        for j in range(-ring, ring + 1)
        if max(abs(i), abs(j)) == ring
    ]
    return sorted(offsets, key=lambda o: (o[0] * o[0] + o[1] * o[1], -o[1], -o[0]))


def find_free_position(
    rects: Iterable[Rectangle],
    width: float,
    height: float,
    start: tuple[float, float] = (0.0, 0.0),
    step: float = 50.0,
    max_rings: int = 64,
    gap: float = 0.0,
) -> tuple[float, float]:
    """Top-left position for a new block that does not overlap existing ones.

    Probes grid positions in growing square rings around ``start``. If every
    probe is occupied the block is placed right of everything.

    :param rects: Occupied rectangles
    :param width: Width of the new block
    :param height: Height of the new block
    :param start: Spawn point (top-left of the first candidate)
    :param step: Distance between probes
    :param max_rings: Number of rings probed before falling back
    :param gap: Distance the new block has to keep
    :return: (x, y) of the free position
    """
    occupied = list(rects)
    sx, sy = start
    for ring in range(max_rings + 1):
        for i, j in _ring_offsets(ring):
            candidate = Rectangle(sx + i * step, sy + j * step, width, height)
            if not any(candidate.intersects(r, gap) for r in occupied):
                return (candidate.x, candidate.y)
    right = max(r.x2 for r in occupied)
    logger.debug(f"No free spawn position within {max_rings} rings, placing at x={right + gap + step}")
    return (right + gap + step, sy)


def handle_for_point(rect: Rectangle, x: float, y: float) -> ResizeHandle:
    """Corner of ``rect`` closest to the grab point."""
    cx, cy = rect.center
    if y < cy:
        return ResizeHandle.TOP_LEFT if x < cx else ResizeHandle.TOP_RIGHT
    return ResizeHandle.BOTTOM_LEFT if x < cx else ResizeHandle.BOTTOM_RIGHT


def resize_rect(
    initial: Rectangle,
    handle: ResizeHandle,
    dx: float,
    dy: float,
    aspect_ratio: float | None = None,
    min_size: float = 50.0,
) -> Rectangle:
    """Resize ``initial`` by dragging ``handle`` by (dx, dy).

    The corner opposite the handle stays fixed. With an aspect ratio the
    height follows the width.

    :param initial: Rectangle when the resize started
    :param handle: Grabbed corner
    :param dx: Pointer travel along x since the resize started
    :param dy: Pointer travel along y since the resize started
    :param aspect_ratio: Locked width / height ratio (image blocks)
    :param min_size: Minimum width and height
    :return: The resized rectangle
    """
    x1, y1, x2, y2 = initial.x, initial.y, initial.x2, initial.y2
    if handle.is_left:
        x1 += dx
    else:
        x2 += dx
    if handle.is_top:
        y1 += dy
    else:
        y2 += dy

    width = max(x2 - x1, min_size)
    height = max(y2 - y1, min_size)
    if aspect_ratio:
        height = width / aspect_ratio
        if height < min_size:
            height = min_size
            width = height * aspect_ratio

    anchor_x = initial.x2 if handle.is_left else initial.x
    anchor_y = initial.y2 if handle.is_top else initial.y
    x = anchor_x - width if handle.is_left else anchor_x
    y = anchor_y - height if handle.is_top else anchor_y
    return Rectangle(x, y, width, height)


def clamp_rect(rect: Rectangle, extent: float) -> Rectangle:
    """Soft canvas bounds: shift ``rect`` into [-extent, extent]."""
    return rect.clamped(extent)
