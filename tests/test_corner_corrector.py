import math

import numpy as np
import pytest

from armorsight.corner_corrector import LightCornerCorrector, SymmetryAxis
from armorsight.types import Armor, Light


def _bar_image(shape, bars):
    img = np.zeros(shape, dtype=np.uint8)
    for x0, x1, y0, y1 in bars:
        img[y0 : y1 + 1, x0 : x1 + 1] = 255
    return img


def _bar_light(x0, x1, y0, y1):
    return Light.from_contour([(x0, y0), (x1, y0), (x1, y1), (x0, y1)])


def test_symmetry_axis_of_vertical_bar():
    gray = _bar_image((60, 60), [(27, 32, 15, 44)])
    light = _bar_light(27, 32, 15, 44)
    axis = LightCornerCorrector().find_symmetry_axis(gray, light)
    assert isinstance(axis, SymmetryAxis)
    assert math.hypot(*axis.direction) == pytest.approx(1.0)
    assert axis.direction[1] == pytest.approx(-1.0)
    assert axis.centroid[1] == pytest.approx(29.5)
    assert 27 <= axis.centroid[0] <= 32
    assert 0 < axis.mean_val < 255


def test_find_corner_top_and_bottom():
    gray = _bar_image((60, 60), [(27, 32, 15, 44)])
    light = _bar_light(27, 32, 15, 44)
    corrector = LightCornerCorrector()
    axis = corrector.find_symmetry_axis(gray, light)
    top = corrector.find_corner(gray, light, axis, "top")
    bottom = corrector.find_corner(gray, light, axis, "bottom")
    assert abs(top[1] - 15) < 1
    assert abs(bottom[1] - 44) < 1
    assert 27 <= top[0] <= 32
    assert 27 <= bottom[0] <= 32
    assert top[1] < bottom[1]


def test_correct_corners_replaces_lights_without_mutating_originals():
    gray = _bar_image((60, 100), [(27, 32, 15, 44), (67, 72, 15, 44)])
    left = _bar_light(27, 32, 15, 44)
    right = _bar_light(67, 72, 15, 44)
    original_left_top = left.top
    armor = Armor.from_lights(right, left)
    LightCornerCorrector().correct_corners(armor, gray)

    assert left.top == original_left_top
    assert armor.left_light is not left
    for light, (x0, x1) in ((armor.left_light, (27, 32)), (armor.right_light, (67, 72))):
        assert abs(light.top[1] - 15) < 1
        assert abs(light.bottom[1] - 44) < 1
        assert x0 <= light.center[0] <= x1
        assert light.center[1] == pytest.approx(29.5)


def test_narrow_light_is_left_alone():
    gray = _bar_image((60, 100), [(27, 29, 15, 44), (67, 72, 15, 44)])
    narrow = _bar_light(27, 29, 15, 44)
    wide = _bar_light(67, 72, 15, 44)
    armor = Armor.from_lights(narrow, wide)
    LightCornerCorrector().correct_corners(armor, gray)
    assert armor.left_light is narrow
    assert armor.left_light.top == narrow.top
    assert armor.right_light is not wide


def test_uniform_region_raises():
    gray = np.full((60, 60), 255, dtype=np.uint8)
    light = _bar_light(27, 32, 15, 44)
    with pytest.raises(ValueError):
        LightCornerCorrector().find_symmetry_axis(gray, light)