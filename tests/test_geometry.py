import math

import pytest

from armorsight.geometry import (
    Rect,
    RotatedRect,
    bounding_rect,
    convex_hull,
    min_area_rect,
)


def _polygon_area(pts):
    total = 0.0
    for (x0, y0), (x1, y1) in zip(pts, pts[1:] + pts[:1]):
        total += x0 * y1 - x1 * y0
    return abs(total) / 2


def test_rect_contains_half_open():
    rect = Rect(0, 0, 2, 2)
    assert rect.contains((0, 0))
    assert rect.contains((1.5, 1.5))
    assert not rect.contains((2, 0))
    assert not rect.contains((0, 2))
    assert not rect.contains((-0.1, 1))


def test_rotated_rect_corners_axis_aligned():
    rect = RotatedRect((5.0, 5.0), (4.0, 2.0), 0.0)
    corners = sorted(rect.corners())
    expected = sorted([(3.0, 4.0), (3.0, 6.0), (7.0, 4.0), (7.0, 6.0)])
    for got, want in zip(corners, expected):
        assert got == pytest.approx(want)


def test_rotated_rect_corners_centroid_is_center():
    rect = RotatedRect((1.0, -2.0), (3.0, 7.0), 33.0)
    corners = rect.corners()
    cx = sum(p[0] for p in corners) / 4
    cy = sum(p[1] for p in corners) / 4
    assert (cx, cy) == pytest.approx(rect.center)
    assert _polygon_area(corners) == pytest.approx(21.0)


def test_convex_hull_drops_interior_and_collinear():
    pts = [(0, 0), (2, 0), (4, 0), (4, 4), (0, 4), (2, 2), (1, 3)]
    hull = convex_hull(pts)
    assert sorted(hull) == sorted([(0.0, 0.0), (4.0, 0.0), (4.0, 4.0), (0.0, 4.0)])


def test_convex_hull_counter_clockwise():
    hull = convex_hull([(0, 0), (3, 0), (3, 3), (0, 3), (1, 1)])
    signed = sum(x0 * y1 - x1 * y0 for (x0, y0), (x1, y1) in zip(hull, hull[1:] + hull[:1]))
    assert signed > 0


def test_min_area_rect_axis_aligned_points():
    pts = [(x, y) for x in range(10, 13) for y in range(0, 21)]
    rect = min_area_rect(pts)
    assert sorted(rect.size) == pytest.approx([2.0, 20.0])
    assert rect.center == pytest.approx((11.0, 10.0))


def test_min_area_rect_recovers_rotated_rect():
    original = RotatedRect((10.0, 20.0), (6.0, 2.0), 30.0)
    rect = min_area_rect(original.corners())
    assert rect.size[0] * rect.size[1] == pytest.approx(12.0)
    assert rect.center == pytest.approx(original.center)


def test_min_area_rect_encloses_points():
    pts = [(0, 0), (5, 1), (3, 4), (1, 3), (2, 2)]
    rect = min_area_rect(pts)
    corners = rect.corners()
    for p in pts:
        for a, b in zip(corners, corners[1:] + corners[:1]):
            cross = (b[0] - a[0]) * (p[1] - a[1]) - (b[1] - a[1]) * (p[0] - a[0])
            assert cross <= 1e-9 or all(
                (c[0] - a[0]) * (q[1] - a[1]) - (c[1] - a[1]) * (q[0] - a[0]) >= -1e-9
                for c, q in [(b, p)]
            )
    area = rect.size[0] * rect.size[1]
    assert area <= _polygon_area(
        [(0, 0), (5, 0), (5, 4), (0, 4)]
    ) + 1e-9


def test_min_area_rect_single_point_and_segment():
    single = min_area_rect([(3, 4)])
    assert single.center == (3.0, 4.0)
    assert single.size == (0.0, 0.0)
    segment = min_area_rect([(0, 0), (0, 5)])
    assert segment.size[0] == pytest.approx(5.0)
    assert math.isclose(abs(segment.angle), 90.0)


def test_bounding_rect_integer_points():
    assert bounding_rect([(0, 0), (3, 4), (1, 1)]) == Rect(0, 0, 4, 5)


def test_bounding_rect_contains_all_points():
    pts = [(1.2, 3.7), (5.9, 0.4), (2.5, 8.1)]
    rect = bounding_rect(pts)
    assert all(rect.contains(p) for p in pts)


@pytest.mark.parametrize("func", [convex_hull, min_area_rect, bounding_rect])
def test_empty_input_rejected(func):
    with pytest.raises(ValueError):
        func([])