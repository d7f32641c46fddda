"""
Tests for the overlap solver, spawn placement and corner resizing.
"""

import pytest

from mablocks.geometry import Rectangle, ResizeHandle
from mablocks.layout import (
    GeometrySolver,
    clamp_rect,
    find_free_position,
    handle_for_point,
    resize_rect,
)


@pytest.fixture
def solver():
    return GeometrySolver(gap=2.0, max_iterations=64, epsilon=0.01, extent=1_000_000)


class TestResolve:
    """Tests for GeometrySolver.resolve."""

    def test_no_overlap_is_untouched(self, solver):
        """Separated rectangles are returned unchanged."""
        rects = {"a": Rectangle(0, 0, 100, 100), "b": Rectangle(200, 0, 100, 100)}
        result = solver.resolve(rects)
        assert result.converged
        assert result.iterations == 0
        assert result.moved == []
        assert result.rects == rects

    def test_anchored_block_stays(self, solver):
        """The anchored block keeps its position, the other takes the full push."""
        rects = {"a": Rectangle(0, 0, 100, 100), "b": Rectangle(50, 0, 100, 100)}
        result = solver.resolve(rects, anchored={"a"})
        assert result.converged
        assert result.rects["a"] == rects["a"]
        assert result.rects["b"].x == pytest.approx(102)
        assert result.rects["b"].y == pytest.approx(0)
        assert result.moved == ["b"]

    def test_mobile_pair_splits_push(self, solver):
        """Two mobile blocks each move half of the correction."""
        rects = {"a": Rectangle(0, 0, 100, 100), "b": Rectangle(50, 0, 100, 100)}
        result = solver.resolve(rects)
        assert result.rects["a"].x == pytest.approx(-26)
        assert result.rects["b"].x == pytest.approx(76)

    def test_pushes_along_least_penetration(self, solver):
        """The correction uses the axis with the smaller depth."""
        rects = {"a": Rectangle(0, 0, 200, 100), "b": Rectangle(50, 0, 200, 100)}
        result = solver.resolve(rects, anchored={"b"})
        assert result.rects["a"].x == pytest.approx(0)
        assert result.rects["a"].y == pytest.approx(-102)

    def test_result_keeps_gap(self, solver):
        """After resolution no pair is closer than the gap."""
        rects = {
            "a": Rectangle(0, 0, 100, 100),
            "b": Rectangle(30, 30, 100, 100),
            "c": Rectangle(60, 10, 100, 100),
            "d": Rectangle(10, 70, 100, 100),
        }
        result = solver.resolve(rects, anchored={"a"})
        assert result.converged
        assert solver.overlapping_pairs(result.rects) == []
        assert result.rects["a"] == rects["a"]

    def test_body_moves_rigidly(self, solver):
        """Members of one body move by the same offset."""
        rects = {
            "a": Rectangle(0, 0, 100, 100),
            "b": Rectangle(60, 0, 100, 100),
            "c": Rectangle(60, 200, 100, 100),
        }
        result = solver.resolve(rects, bodies=[["b", "c"]], anchored={"a"})
        dx_b = result.rects["b"].x - rects["b"].x
        dx_c = result.rects["c"].x - rects["c"].x
        dy_b = result.rects["b"].y - rects["b"].y
        dy_c = result.rects["c"].y - rects["c"].y
        assert dx_b == pytest.approx(dx_c)
        assert dy_b == pytest.approx(dy_c)
        assert result.rects["a"] == rects["a"]
        assert solver.overlapping_pairs(result.rects) == []

    def test_overlapping_body_members_are_separated(self, solver):
        """Members of one body that overlap are pushed apart around the anchored one."""
        rects = {
            "a": Rectangle(0, 0, 100, 100),
            "b": Rectangle(50, 0, 100, 100),
            "c": Rectangle(0, 300, 100, 100),
        }
        result = solver.resolve(rects, bodies=[["a", "b", "c"]], anchored={"a"})
        assert result.converged
        assert result.rects["a"] == rects["a"]
        assert result.rects["b"].x == pytest.approx(102)
        assert result.rects["c"] == rects["c"]
        assert solver.overlapping_pairs(result.rects) == []

    def test_unanchored_body_members_split_push(self, solver):
        """Without an anchor, overlapping members of one body share the correction."""
        rects = {"a": Rectangle(0, 0, 100, 100), "b": Rectangle(50, 0, 100, 100)}
        result = solver.resolve(rects, bodies=[["a", "b"]])
        assert result.rects["a"].x == pytest.approx(-26)
        assert result.rects["b"].x == pytest.approx(76)

    def test_body_clamped_as_a_whole(self):
        """A body pulled back from the canvas edge keeps its member offsets."""
        solver = GeometrySolver(gap=2.0, extent=1000)
        rects = {"a": Rectangle(800, 0, 200, 100), "b": Rectangle(1100, 0, 200, 100)}
        result = solver.resolve(rects, bodies=[["a", "b"]], anchored={"a", "b"})
        assert result.converged
        assert result.rects["b"].x2 <= 1000
        assert result.rects["b"].x - result.rects["a"].x == pytest.approx(300)
        assert result.rects["a"].y == result.rects["b"].y == 0
        assert solver.overlapping_pairs(result.rects) == []

    def test_anchored_pair_is_skipped(self, solver):
        """Two anchored blocks stay put and the result is not converged."""
        rects = {"a": Rectangle(0, 0, 100, 100), "b": Rectangle(50, 0, 100, 100)}
        result = solver.resolve(rects, anchored={"a", "b"})
        assert result.rects == rects
        assert not result.converged
        assert result.max_depth == pytest.approx(52)

    def test_iteration_budget(self):
        """A spent budget returns the best layout seen."""
        solver = GeometrySolver(gap=2.0, max_iterations=0)
        rects = {"a": Rectangle(0, 0, 100, 100), "b": Rectangle(50, 0, 100, 100)}
        result = solver.resolve(rects)
        assert result.iterations == 0
        assert not result.converged
        assert result.rects == rects

    def test_deterministic(self, solver):
        """Identical input yields identical output."""
        rects = {
            "b": Rectangle(10, 10, 100, 100),
            "a": Rectangle(0, 0, 100, 100),
            "c": Rectangle(20, 5, 100, 100),
        }
        first = solver.resolve(rects)
        second = solver.resolve(dict(reversed(list(rects.items()))))
        assert first.rects == second.rects

    def test_clamps_to_extent(self):
        """Rectangles outside the canvas square are pulled back in."""
        solver = GeometrySolver(extent=1000)
        rects = {"a": Rectangle(5000, 0, 100, 100)}
        result = solver.resolve(rects)
        assert result.rects["a"].x2 <= 1000
        assert result.moved == ["a"]

    def test_overlapping_pairs(self, solver):
        """overlapping_pairs reports sorted id pairs with their depth."""
        rects = {"b": Rectangle(50, 0, 100, 100), "a": Rectangle(0, 0, 100, 100)}
        pairs = solver.overlapping_pairs(rects)
        assert len(pairs) == 1
        a, b, depth = pairs[0]
        assert (a, b) == ("a", "b")
        assert depth == pytest.approx(52)


class TestSpawn:
    """Tests for find_free_position."""

    def test_empty_canvas_uses_start(self):
        """The spawn point is used when it is free."""
        assert find_free_position([], 200, 100, start=(10, 20)) == (10, 20)

    def test_avoids_occupied_area(self):
        """The new block does not overlap existing blocks."""
        occupied = [Rectangle(0, 0, 200, 100)]
        x, y = find_free_position(occupied, 200, 100, gap=2)
        candidate = Rectangle(x, y, 200, 100)
        assert not any(candidate.intersects(r, gap=2) for r in occupied)

    def test_fallback_right_of_everything(self):
        """With every spot taken the block goes right of the occupied area."""
        occupied = [Rectangle(-1000, -1000, 2000, 2000)]
        x, y = find_free_position(occupied, 100, 100, step=50, max_rings=2, gap=2)
        assert x == pytest.approx(1000 + 2 + 50)
        assert y == 0


class TestResize:
    """Tests for corner resizing."""

    def test_bottom_right(self):
        """Dragging the bottom-right corner keeps the top-left fixed."""
        rect = resize_rect(Rectangle(0, 0, 100, 100), ResizeHandle.BOTTOM_RIGHT, 50, 20)
        assert rect.to_tuple() == (0, 0, 150, 120)

    def test_top_left_keeps_bottom_right(self):
        """Dragging the top-left corner keeps the bottom-right fixed."""
        rect = resize_rect(Rectangle(0, 0, 100, 100), ResizeHandle.TOP_LEFT, -30, 10)
        assert (rect.x2, rect.y2) == (100, 100)
        assert rect.to_tuple() == (-30, 10, 130, 90)

    def test_minimum_size(self):
        """Width and height never drop below the minimum."""
        rect = resize_rect(Rectangle(0, 0, 100, 100), ResizeHandle.BOTTOM_RIGHT, -90, -90, min_size=50)
        assert rect.to_tuple() == (0, 0, 50, 50)

    def test_minimum_size_from_left(self):
        """The anchored corner stays fixed when the minimum kicks in."""
        rect = resize_rect(Rectangle(0, 0, 100, 100), ResizeHandle.TOP_LEFT, 90, 90, min_size=50)
        assert rect.to_tuple() == (50, 50, 50, 50)

    def test_aspect_ratio_locked(self):
        """With an aspect ratio the height follows the width."""
        rect = resize_rect(
            Rectangle(0, 0, 200, 100), ResizeHandle.BOTTOM_RIGHT, 100, 0, aspect_ratio=2.0
        )
        assert rect.width == pytest.approx(300)
        assert rect.height == pytest.approx(150)

    def test_aspect_ratio_minimum(self):
        """The aspect lock keeps both sides at or above the minimum."""
        rect = resize_rect(
            Rectangle(0, 0, 200, 100), ResizeHandle.BOTTOM_RIGHT, -150, 0, aspect_ratio=2.0, min_size=50
        )
        assert rect.height == pytest.approx(50)
        assert rect.width == pytest.approx(100)

    @pytest.mark.parametrize("point,handle", [
        ((10, 10), ResizeHandle.TOP_LEFT),
        ((90, 10), ResizeHandle.TOP_RIGHT),
        ((10, 90), ResizeHandle.BOTTOM_LEFT),
        ((90, 90), ResizeHandle.BOTTOM_RIGHT),
    ])
    def test_handle_for_point(self, point, handle):
        """The grabbed quadrant picks the handle."""
        assert handle_for_point(Rectangle(0, 0, 100, 100), *point) == handle

    def test_clamp_rect(self):
        """clamp_rect keeps rectangles within the extent."""
        assert clamp_rect(Rectangle(-50, 0, 10, 10), 20).to_tuple() == (-20, 0, 10, 10)
