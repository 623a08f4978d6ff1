import numpy as np
import pytest

from armorsight.types import (
    N_LANDMARKS,
    SMALL_ARMOR_HEIGHT,
    SMALL_ARMOR_WIDTH,
    Armor,
    ArmorType,
    CameraIntrinsics,
    EnemyColor,
    Light,
    armor_type_to_string,
    build_object_points,
)


def _rect_contour(x0, x1, y0, y1):
    pts = []
    for x in range(x0, x1 + 1):
        pts.append((x, y0))
        pts.append((x, y1))
    for y in range(y0 + 1, y1):
        pts.append((x0, y))
        pts.append((x1, y))
    return pts


def _vertical_light(x):
    return Light.from_contour(_rect_contour(x - 1, x + 1, 0, 20))


@pytest.mark.parametrize(
    "armor_type, name",
    [(ArmorType.SMALL, "small"), (ArmorType.LARGE, "large"), (ArmorType.INVALID, "invalid")],
)
def test_armor_type_to_string(armor_type, name):
    assert armor_type_to_string(armor_type) == name


def test_camera_matrix_layout():
    k = CameraIntrinsics(fx=1200.0, fy=1100.0, cx=640.0, cy=512.0)
    expected = np.array([[1200.0, 0.0, 640.0], [0.0, 1100.0, 512.0], [0.0, 0.0, 1.0]])
    assert np.allclose(k.to_matrix(), expected)


def test_build_object_points_shape_and_symmetry():
    pts = build_object_points(SMALL_ARMOR_WIDTH, SMALL_ARMOR_HEIGHT)
    assert pts.shape == (N_LANDMARKS, 3)
    assert np.allclose(pts[:, 0], 0.0)
    assert np.allclose(pts[0], [0.0, SMALL_ARMOR_WIDTH / 2, -SMALL_ARMOR_HEIGHT / 2])
    assert np.allclose(pts[3], [0.0, -SMALL_ARMOR_WIDTH / 2, SMALL_ARMOR_HEIGHT / 2])
    assert np.allclose(pts.sum(axis=0), 0.0)


def test_light_from_vertical_contour():
    light = _vertical_light(11)
    assert light.center == pytest.approx((11.0, 10.0))
    assert light.top == pytest.approx((11.0, 0.0))
    assert light.bottom == pytest.approx((11.0, 20.0))
    assert light.length == pytest.approx(20.0)
    assert light.width == pytest.approx(2.0)
    assert light.tilt_angle == pytest.approx(0.0, abs=1e-9)
    assert light.color is EnemyColor.WHITE


def test_light_top_above_bottom_for_tilted_contour():
    contour = [(10 + i // 4, i) for i in range(30)] + [(13 + i // 4, i) for i in range(30)]
    light = Light.from_contour(contour)
    assert light.top[1] < light.bottom[1]
    assert light.length > light.width
    assert 0.0 < light.tilt_angle < 45.0


def test_light_from_empty_contour_rejected():
    with pytest.raises(ValueError):
        Light.from_contour([])


def test_light_bounding_rect_holds_end_points():
    light = _vertical_light(30)
    rect = light.bounding_rect()
    for p in (light.top, light.bottom, light.center):
        assert rect.contains(p)


def test_armor_from_lights_orders_left_to_right():
    left = _vertical_light(10)
    right = _vertical_light(50)
    armor = Armor.from_lights(right, left)
    assert armor.left_light is left
    assert armor.right_light is right
    assert armor.center == pytest.approx(
        ((left.center[0] + right.center[0]) / 2, (left.center[1] + right.center[1]) / 2)
    )


def test_armor_landmarks_order():
    left = _vertical_light(10)
    right = _vertical_light(50)
    armor = Armor.from_lights(left, right)
    assert armor.landmarks() == [
        left.bottom,
        left.center,
        left.top,
        right.top,
        right.center,
        right.bottom,
    ]
    assert len(armor.landmarks()) == N_LANDMARKS