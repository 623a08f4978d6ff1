"""Armor number extraction and classification."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

import numpy as np

from armorsight.types import Armor, ArmorType

Model = Callable[[np.ndarray], np.ndarray]

_LIGHT_LENGTH = 12
_WARP_HEIGHT = 28
_SMALL_WARP_WIDTH = 32
_LARGE_WARP_WIDTH = 54
_ROI_WIDTH = 20
_INPUT_SIZE = 28
_FLT_EPSILON = float(np.finfo(np.float32).eps)


def perspective_transform(
    src_points: Sequence[Sequence[float]], dst_points: Sequence[Sequence[float]]
) -> np.ndarray:
    """Return the 3x3 homography mapping four source points onto four targets."""
    src = [(float(p[0]), float(p[1])) for p in src_points]
    dst = [(float(p[0]), float(p[1])) for p in dst_points]
    if len(src) != 4 or len(dst) != 4:
        raise ValueError("exactly four source and four target points are required")
    rows_u = []
    rows_v = []
    rhs_u = []
    rhs_v = []
    for (x, y), (u, v) in zip(src, dst):
        rows_u.append([x, y, 1.0, 0.0, 0.0, 0.0, -x * u, -y * u])
        rows_v.append([0.0, 0.0, 0.0, x, y, 1.0, -x * v, -y * v])
        rhs_u.append(u)
        rhs_v.append(v)
    a = np.array(rows_u + rows_v)
    b = np.array(rhs_u + rhs_v)
    try:
        solution = np.linalg.solve(a, b)
    except np.linalg.LinAlgError as exc:
        raise ValueError("points are degenerate") from exc
    return np.append(solution, 1.0).reshape(3, 3)


def _bilinear_sample(image: np.ndarray, sx: np.ndarray, sy: np.ndarray) -> np.ndarray:
    rows, cols = image.shape[:2]
    x0 = np.floor(sx).astype(np.int64)
    y0 = np.floor(sy).astype(np.int64)
    fx = sx - x0
    fy = sy - y0
    data = image.astype(np.float64)
    extra = image.shape[2:]
    result = np.zeros(sx.shape + extra, dtype=np.float64)
    for ox, oy, weight in (
        (0, 0, (1 - fx) * (1 - fy)),
        (1, 0, fx * (1 - fy)),
        (0, 1, (1 - fx) * fy),
        (1, 1, fx * fy),
    ):
        xs = x0 + ox
        ys = y0 + oy
        inside = (xs >= 0) & (xs < cols) & (ys >= 0) & (ys < rows)
        values = np.zeros(sx.shape + extra, dtype=np.float64)
        values[inside] = data[ys[inside], xs[inside]]
        w = weight.reshape(weight.shape + (1,) * len(extra))
        result += w * values
    return result


def _cast_like(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.floor(values + 0.5), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def warp_perspective(
    image: np.ndarray, matrix: np.ndarray, width: int, height: int
) -> np.ndarray:
    """Warp an image by a homography, with bilinear sampling and a black border."""
    img = np.asarray(image)
    inverse = np.linalg.inv(np.asarray(matrix, dtype=np.float64))
    xs, ys = np.meshgrid(np.arange(width, dtype=np.float64), np.arange(height, dtype=np.float64))
    coords = np.stack([xs.ravel(), ys.ravel(), np.ones(xs.size)])
    mapped = inverse @ coords
    w = mapped[2]
    w = np.where(w == 0, np.inf, w)
    sx = (mapped[0] / w).reshape(height, width)
    sy = (mapped[1] / w).reshape(height, width)
    return _cast_like(_bilinear_sample(img, sx, sy), img.dtype)


def _resize_linear(image: np.ndarray, width: int, height: int) -> np.ndarray:
    img = np.asarray(image)
    rows, cols = img.shape[:2]

    def axis_coords(dst: int, src: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        pos = (np.arange(dst, dtype=np.float64) + 0.5) * src / dst - 0.5
        pos = np.maximum(pos, 0.0)
        lo = np.floor(pos).astype(np.int64)
        frac = pos - lo
        lo = np.minimum(lo, src - 1)
        hi = np.minimum(lo + 1, src - 1)
        return lo, hi, frac

    x_lo, x_hi, fx = axis_coords(width, cols)
    y_lo, y_hi, fy = axis_coords(height, rows)
    data = img.astype(np.float64)
    top = data[y_lo][:, x_lo] * (1 - fx) + data[y_lo][:, x_hi] * fx
    bottom = data[y_hi][:, x_lo] * (1 - fx) + data[y_hi][:, x_hi] * fx
    result = top * (1 - fy)[:, None] + bottom * fy[:, None]
    return _cast_like(result, img.dtype)


def rgb_to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image (height x width x 3) to 8-bit luminance."""
    img = np.asarray(image)
    if img.ndim != 3 or img.shape[2] != 3:
        raise ValueError("expected an RGB image of shape (height, width, 3)")
    rgb = img.astype(np.float64)
    luma = 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]
    return np.clip(np.floor(luma + 0.5), 0, 255).astype(np.uint8)


def otsu_threshold(gray: np.ndarray) -> tuple[int, np.ndarray]:
    """Pick a threshold by Otsu's method; return it with the binary image (0/255)."""
    img = np.asarray(gray)
    if img.dtype != np.uint8 or img.ndim != 2:
        raise ValueError("expected a two-dimensional uint8 image")
    hist = np.bincount(img.ravel(), minlength=256).astype(np.float64)
    probs = hist / img.size if img.size else hist

    mu = float(np.dot(np.arange(256), probs))
    q1 = 0.0
    mu1 = 0.0
    max_sigma = 0.0
    threshold = 0
    for level, p in enumerate(probs):
        mu1 *= q1
        q1 += p
        q2 = 1.0 - q1
        if min(q1, q2) < _FLT_EPSILON or max(q1, q2) > 1.0 - _FLT_EPSILON:
            continue
        mu1 = (mu1 + level * p) / q1
        mu2 = (mu - q1 * mu1) / q2
        sigma = q1 * q2 * (mu1 - mu2) ** 2
        if sigma > max_sigma:
            max_sigma = sigma
            threshold = level

    binary = np.where(img > threshold, 255, 0).astype(np.uint8)
    return threshold, binary


class NumberClassifier:
    """Classifies the number on an armor plate with a supplied model.

    The model is any callable taking a float blob of shape (1, 1, 28, 28) with
    values in [0, 1] and returning one score per class.
    """

    def __init__(
        self,
        model: Model,
        class_names: Iterable[str],
        threshold: float,
        ignore_classes: Optional[Iterable[str]] = None,
    ) -> None:
        self.model = model
        self.class_names = list(class_names)
        self.threshold = threshold
        self.ignore_classes = list(ignore_classes or [])
        self._lock = threading.Lock()

    @classmethod
    def from_label_file(
        cls,
        model: Model,
        label_path: str | Path,
        threshold: float,
        ignore_classes: Optional[Iterable[str]] = None,
    ) -> "NumberClassifier":
        """Build a classifier whose class names are the lines of a label file."""
        with open(label_path, encoding="utf-8") as handle:
            names = [line.rstrip("\r\n") for line in handle]
        return cls(model, names, threshold, ignore_classes)

    def extract_number(self, src: np.ndarray, armor: Armor) -> np.ndarray:
        """Return the binarised 28x28 image of the number between the lights."""
        left, right = armor.left_light, armor.right_light
        light_vertices = [left.bottom, left.top, right.top, right.bottom]

        top_light_y = (_WARP_HEIGHT - _LIGHT_LENGTH) // 2 - 1
        bottom_light_y = top_light_y + _LIGHT_LENGTH
        warp_width = _SMALL_WARP_WIDTH if armor.type is ArmorType.SMALL else _LARGE_WARP_WIDTH
        target_vertices = [
            (0, bottom_light_y),
            (0, top_light_y),
            (warp_width - 1, top_light_y),
            (warp_width - 1, bottom_light_y),
        ]
        matrix = perspective_transform(light_vertices, target_vertices)
        warped = warp_perspective(src, matrix, warp_width, _WARP_HEIGHT)

        x = (warp_width - _ROI_WIDTH) // 2
        roi = warped[:, x : x + _ROI_WIDTH]
        _, binary = otsu_threshold(rgb_to_gray(roi))
        return _resize_linear(binary, _INPUT_SIZE, _INPUT_SIZE)

    def classify(self, armor: Armor) -> None:
        """Set the armor's number, confidence and classification text."""
        if armor.number_img is None:
            raise ValueError("armor has no number image")
        normalized = np.asarray(armor.number_img, dtype=np.float32) / 255.0
        blob = normalized.reshape(1, 1, *normalized.shape)

        with self._lock:
            outputs = np.array(self.model(blob), dtype=np.float64, copy=True)

        scores = outputs.reshape(-1)
        label_id = int(np.argmax(scores))
        armor.confidence = float(scores[label_id])
        armor.number = self.class_names[label_id]
        armor.classification_result = f"{armor.number}: {armor.confidence * 100.0:.1f}%"

    def _should_erase(self, armor: Armor) -> bool:
        if armor.confidence < self.threshold:
            return True
        if armor.number in self.ignore_classes:
            return True
        if armor.type is ArmorType.LARGE:
            return armor.number in ("outpost", "2", "sentry")
        if armor.type is ArmorType.SMALL:
            return armor.number in ("1", "base")
        return False

    def erase_ignore_classes(self, armors: list[Armor]) -> None:
        """Remove, in place, armors with low confidence, ignored or mismatched classes."""
        armors[:] = [armor for armor in armors if not self._should_erase(armor)]