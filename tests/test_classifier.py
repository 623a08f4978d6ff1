import numpy as np
import pytest

from armorsight.classifier import (
    NumberClassifier,
    otsu_threshold,
    perspective_transform,
    rgb_to_gray,
    warp_perspective,
)
from armorsight.types import Armor, ArmorType, Light


def _light(top, bottom):
    center = ((top[0] + bottom[0]) / 2, (top[1] + bottom[1]) / 2)
    length = abs(bottom[1] - top[1])
    return Light(
        center=center,
        size=(4.0, length),
        angle=0.0,
        top=top,
        bottom=bottom,
        length=length,
        width=4.0,
        tilt_angle=0.0,
    )


def _armor(armor_type=ArmorType.SMALL, number="", confidence=0.0):
    armor = Armor.from_lights(_light((30.0, 40.0), (30.0, 60.0)), _light((70.0, 40.0), (70.0, 60.0)))
    armor.type = armor_type
    armor.number = number
    armor.confidence = confidence
    return armor


def _apply(matrix, point):
    v = matrix @ np.array([point[0], point[1], 1.0])
    return v[0] / v[2], v[1] / v[2]


def test_perspective_transform_maps_points():
    src = [(10.0, 20.0), (12.0, 5.0), (40.0, 6.0), (38.0, 22.0)]
    dst = [(0.0, 19.0), (0.0, 7.0), (31.0, 7.0), (31.0, 19.0)]
    matrix = perspective_transform(src, dst)
    assert matrix[2, 2] == pytest.approx(1.0)
    for s, d in zip(src, dst):
        assert _apply(matrix, s) == pytest.approx(d)


def test_perspective_transform_identity():
    pts = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)]
    np.testing.assert_allclose(perspective_transform(pts, pts), np.eye(3), atol=1e-12)


def test_perspective_transform_rejects_bad_input():
    with pytest.raises(ValueError):
        perspective_transform([(0, 0), (1, 0), (1, 1)], [(0, 0), (1, 0), (1, 1)])
    with pytest.raises(ValueError):
        perspective_transform([(0, 0)] * 4, [(0, 0), (1, 0), (1, 1), (0, 1)])


def test_warp_identity_and_translation():
    rng = np.random.default_rng(0)
    image = rng.integers(0, 256, size=(8, 10), dtype=np.uint8)
    same = warp_perspective(image, np.eye(3), 10, 8)
    np.testing.assert_array_equal(same, image)

    shift = np.array([[1.0, 0.0, 2.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    moved = warp_perspective(image, shift, 10, 8)
    np.testing.assert_array_equal(moved[:, 2:], image[:, :-2])
    assert not moved[:, :2].any()


def test_warp_keeps_channels():
    image = np.full((5, 6, 3), 7, dtype=np.uint8)
    out = warp_perspective(image, np.eye(3), 4, 3)
    assert out.shape == (3, 4, 3)
    assert (out == 7).all()


def test_rgb_to_gray_equal_channels():
    image = np.stack([np.arange(0, 256, 5, dtype=np.uint8)] * 3, axis=-1).reshape(1, -1, 3)
    gray = rgb_to_gray(image)
    np.testing.assert_array_equal(gray[0], image[0, :, 0])


def test_rgb_to_gray_requires_three_channels():
    with pytest.raises(ValueError):
        rgb_to_gray(np.zeros((4, 4), dtype=np.uint8))


def test_otsu_splits_two_levels():
    img = np.full((10, 10), 10, dtype=np.uint8)
    img[3:7, 2:8] = 200
    threshold, binary = otsu_threshold(img)
    assert 10 <= threshold < 200
    np.testing.assert_array_equal(binary, np.where(img == 200, 255, 0))


def test_otsu_requires_uint8():
    with pytest.raises(ValueError):
        otsu_threshold(np.zeros((4, 4), dtype=np.float32))


def test_extract_number_gives_binary_input_image():
    image = np.zeros((100, 100, 3), dtype=np.uint8)
    image[45:55, 45:55] = 255
    classifier = NumberClassifier(lambda blob: np.zeros(1), ["x"], 0.5)
    number = classifier.extract_number(image, _armor())
    assert number.shape == (28, 28)
    assert number.dtype == np.uint8
    assert number.max() == 255
    assert number.min() == 0


def test_classify_uses_best_score():
    seen = []

    def model(blob):
        seen.append(blob)
        return np.array([[0.05, 0.9, 0.05]])

    classifier = NumberClassifier(model, ["1", "3", "negative"], 0.5)
    armor = _armor()
    armor.number_img = np.full((28, 28), 255, dtype=np.uint8)
    classifier.classify(armor)
    assert armor.number == "3"
    assert armor.confidence == pytest.approx(0.9)
    assert armor.classification_result == "3: 90.0%"
    assert seen[0].shape == (1, 1, 28, 28)
    assert seen[0].max() == pytest.approx(1.0)


def test_classify_without_number_image_raises():
    classifier = NumberClassifier(lambda blob: np.ones(1), ["1"], 0.5)
    with pytest.raises(ValueError):
        classifier.classify(_armor())


def test_erase_ignore_classes():
    classifier = NumberClassifier(lambda blob: np.ones(1), [], 0.6, ["negative"])
    keep_small = _armor(ArmorType.SMALL, "3", 0.9)
    keep_large = _armor(ArmorType.LARGE, "1", 0.9)
    armors = [
        keep_small,
        _armor(ArmorType.SMALL, "3", 0.5),
        _armor(ArmorType.SMALL, "negative", 0.99),
        _armor(ArmorType.LARGE, "2", 0.9),
        _armor(ArmorType.LARGE, "outpost", 0.9),
        _armor(ArmorType.LARGE, "sentry", 0.9),
        _armor(ArmorType.SMALL, "1", 0.9),
        _armor(ArmorType.SMALL, "base", 0.9),
        keep_large,
    ]
    classifier.erase_ignore_classes(armors)
    assert armors == [keep_small, keep_large]


def test_from_label_file(tmp_path):
    labels = tmp_path / "label.txt"
    labels.write_text("1\n2\noutpost\nnegative\n", encoding="utf-8")
    classifier = NumberClassifier.from_label_file(
        lambda blob: np.array([0.0, 0.0, 1.0, 0.0]), labels, 0.7, ["negative"]
    )
    assert classifier.class_names == ["1", "2", "outpost", "negative"]
    assert classifier.threshold == 0.7
    armor = _armor()
    armor.number_img = np.zeros((28, 28), dtype=np.uint8)
    classifier.classify(armor)
    assert armor.number == "outpost"