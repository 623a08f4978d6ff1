"""Armor tracking: matching detections to a filtered spinning-target state."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence

import numpy as np

from armorsight.motion_model import MEASUREMENT_SIZE, STATE_SIZE

# Radius the filter starts from and the limits it is held within, metres
_INITIAL_RADIUS = 0.26
_MIN_RADIUS = 0.12
_MAX_RADIUS = 0.4
# Yaw change (rad) above which a jump to another armor is taken as spinning
_JUMP_YAW = 0.4


class ArmorsNum(Enum):
    NORMAL_4 = 4
    BALANCE_2 = 2
    OUTPOST_3 = 3


class TrackerState(Enum):
    LOST = 0
    DETECTING = 1
    TRACKING = 2
    TEMP_LOST = 3


class StateFilter(Protocol):
    """The filter the tracker drives: a Kalman filter over the 9-element state."""

    def predict(self) -> np.ndarray: ...

    def update(self, z: np.ndarray) -> np.ndarray: ...

    def set_state(self, x: np.ndarray) -> None: ...


@dataclass
class ArmorObservation:
    """One detected armor in the tracking frame.

    ``orientation`` is a quaternion given as ``(x, y, z, w)``.
    """

    number: str
    type: str
    position: tuple[float, float, float]
    orientation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    distance_to_image_center: float = 0.0


def quaternion_to_rpy(q: Sequence[float]) -> tuple[float, float, float]:
    """Return (roll, pitch, yaw) of a quaternion ``(x, y, z, w)``."""
    x, y, z, w = (float(v) for v in q)
    d = x * x + y * y + z * z + w * w
    if d == 0.0:
        raise ValueError("quaternion must not be zero")
    s = 2.0 / d
    xs, ys, zs = x * s, y * s, z * s
    wx, wy, wz = w * xs, w * ys, w * zs
    xx, xy, xz = x * xs, x * ys, x * zs
    yy, yz, zz = y * ys, y * zs, z * zs
    m = (
        (1.0 - (yy + zz), xy - wz, xz + wy),
        (xy + wz, 1.0 - (xx + zz), yz - wx),
        (xz - wy, yz + wx, 1.0 - (xx + yy)),
    )
    if abs(m[2][0]) >= 1.0:
        yaw = 0.0
        if m[2][0] < 0:
            pitch = math.pi / 2
            roll = math.atan2(m[0][1], m[0][2])
        else:
            pitch = -math.pi / 2
            roll = math.atan2(-m[0][1], -m[0][2])
    else:
        pitch = -math.asin(m[2][0])
        cp = math.cos(pitch)
        roll = math.atan2(m[2][1] / cp, m[2][2] / cp)
        yaw = math.atan2(m[1][0] / cp, m[0][0] / cp)
    return roll, pitch, yaw


def _normalize_angle(angle: float) -> float:
    two_pi = 2.0 * math.pi
    a = math.fmod(math.fmod(angle, two_pi) + two_pi, two_pi)
    if a > math.pi:
        a -= two_pi
    return a


def shortest_angular_distance(from_angle: float, to_angle: float) -> float:
    """Signed angle in (-pi, pi] that turns ``from_angle`` onto ``to_angle``."""
    return _normalize_angle(to_angle - from_angle)


def armor_position_from_state(x: Sequence[float]) -> np.ndarray:
    """Position of the currently observed armor implied by a filter state."""
    s = np.asarray(x, dtype=float).reshape(-1)
    if s.size != STATE_SIZE:
        raise ValueError(f"state must have {STATE_SIZE} elements, got {s.size}")
    xc, yc, za, yaw, r = s[0], s[2], s[4], s[6], s[8]
    return np.array([xc - r * math.cos(yaw), yc - r * math.sin(yaw), za])


def armors_num_for(armor_type: str, number: str) -> ArmorsNum:
    """How many armors the robot carrying this armor has."""
    if armor_type == "large" and number in ("3", "4", "5"):
        return ArmorsNum.BALANCE_2
    if number == "outpost":
        return ArmorsNum.OUTPOST_3
    return ArmorsNum.NORMAL_4


class Tracker:
    """Follows one robot across frames and keeps its filtered state."""

    def __init__(
        self, max_match_distance: float, max_match_yaw_diff: float, ekf: StateFilter
    ) -> None:
        self.max_match_distance = max_match_distance
        self.max_match_yaw_diff = max_match_yaw_diff
        self.ekf = ekf

        self.tracker_state = TrackerState.LOST
        self.tracking_thres = 5
        self.lost_thres = 5

        self.tracked_armor: Optional[ArmorObservation] = None
        self.tracked_id = ""
        self.tracked_armors_num = ArmorsNum.NORMAL_4
        self.measurement = np.zeros(MEASUREMENT_SIZE)
        self.target_state = np.zeros(STATE_SIZE)

        self.info_position_diff = 0.0
        self.info_yaw_diff = 0.0

        # The other pair of armors on a four-armor robot
        self.dz = 0.0
        self.another_r = 0.0

        self._detect_count = 0
        self._lost_count = 0
        self._last_yaw = 0.0

    def init(self, armors: Sequence[ArmorObservation]) -> None:
        """Start tracking the armor closest to the image centre."""
        if not armors:
            return
        min_distance = math.inf
        tracked = armors[0]
        for armor in armors:
            if armor.distance_to_image_center < min_distance:
                min_distance = armor.distance_to_image_center
                tracked = armor
        self.tracked_armor = tracked
        self._init_filter(tracked)
        self.tracked_id = tracked.number
        self.tracker_state = TrackerState.DETECTING
        self.tracked_armors_num = armors_num_for(tracked.type, self.tracked_id)

    def update(self, armors: Sequence[ArmorObservation]) -> None:
        """Predict, match the new detections and advance the tracking state."""
        prediction = np.array(self.ekf.predict(), dtype=float).reshape(-1)
        matched = False
        self.target_state = prediction.copy()

        if armors:
            same_id_armor: Optional[ArmorObservation] = None
            same_id_count = 0
            predicted_position = armor_position_from_state(prediction)
            min_position_diff = math.inf
            yaw_diff = math.inf
            for armor in armors:
                if armor.number != self.tracked_id:
                    continue
                same_id_armor = armor
                same_id_count += 1
                position_diff = float(
                    np.linalg.norm(predicted_position - np.asarray(armor.position, dtype=float))
                )
                if position_diff < min_position_diff:
                    min_position_diff = position_diff
                    yaw_diff = abs(self.orientation_to_yaw(armor.orientation) - prediction[6])
                    self.tracked_armor = armor
                    self.tracked_armors_num = armors_num_for(armor.type, self.tracked_id)

            self.info_position_diff = min_position_diff
            self.info_yaw_diff = yaw_diff

            if min_position_diff < self.max_match_distance and yaw_diff < self.max_match_yaw_diff:
                matched = True
                assert self.tracked_armor is not None
                px, py, pz = self.tracked_armor.position
                measured_yaw = self.orientation_to_yaw(self.tracked_armor.orientation)
                self.measurement = np.array([px, py, pz, measured_yaw], dtype=float)
                self.target_state = np.array(
                    self.ekf.update(self.measurement), dtype=float
                ).reshape(-1)
            elif (
                same_id_count == 1
                and same_id_armor is not None
                and yaw_diff > self.max_match_yaw_diff
            ):
                # A lone armor whose yaw jumped: the target spun to its next armor
                self._handle_armor_jump(same_id_armor)

        # Keep the radius within physical limits
        if self.target_state[8] < _MIN_RADIUS:
            self.target_state[8] = _MIN_RADIUS
            self.ekf.set_state(self.target_state.copy())
        elif self.target_state[8] > _MAX_RADIUS:
            self.target_state[8] = _MAX_RADIUS
            self.ekf.set_state(self.target_state.copy())

        self._advance_state(matched)

    def _advance_state(self, matched: bool) -> None:
        state = self.tracker_state
        if state is TrackerState.DETECTING:
            if matched:
                self._detect_count += 1
                if self._detect_count > self.tracking_thres:
                    self._detect_count = 0
                    self.tracker_state = TrackerState.TRACKING
            else:
                self._detect_count = 0
                self.tracker_state = TrackerState.LOST
        elif state is TrackerState.TRACKING:
            if not matched:
                self.tracker_state = TrackerState.TEMP_LOST
                self._lost_count += 1
        elif state is TrackerState.TEMP_LOST:
            if not matched:
                self._lost_count += 1
                if self._lost_count > self.lost_thres:
                    self._lost_count = 0
                    self.tracker_state = TrackerState.LOST
            else:
                self.tracker_state = TrackerState.TRACKING
                self._lost_count = 0

    def _init_filter(self, armor: ArmorObservation) -> None:
        xa, ya, za = armor.position
        self._last_yaw = 0.0
        yaw = self.orientation_to_yaw(armor.orientation)
        r = _INITIAL_RADIUS
        xc = xa + r * math.cos(yaw)
        yc = ya + r * math.sin(yaw)
        self.dz = 0.0
        self.another_r = r
        self.target_state = np.array([xc, 0.0, yc, 0.0, za, 0.0, yaw, 0.0, r], dtype=float)
        self.ekf.set_state(self.target_state.copy())

    def _handle_armor_jump(self, armor: ArmorObservation) -> None:
        last_yaw = self.target_state[6]
        yaw = self.orientation_to_yaw(armor.orientation)
        px, py, pz = armor.position

        if abs(yaw - last_yaw) > _JUMP_YAW:
            self.target_state[6] = yaw
            # Only four-armor robots have two radii and heights
            if self.tracked_armors_num is ArmorsNum.NORMAL_4:
                self.dz = float(self.target_state[4] - pz)
                self.target_state[4] = pz
                self.target_state[8], self.another_r = self.another_r, float(self.target_state[8])

        inferred = armor_position_from_state(self.target_state)
        current = np.array([px, py, pz], dtype=float)
        if float(np.linalg.norm(current - inferred)) > self.max_match_distance:
            # The state no longer explains the armor: reset centre and velocities
            r = self.target_state[8]
            self.target_state[0] = px + r * math.cos(yaw)
            self.target_state[1] = 0.0
            self.target_state[2] = py + r * math.sin(yaw)
            self.target_state[3] = 0.0
            self.target_state[4] = pz
            self.target_state[5] = 0.0

        self.ekf.set_state(self.target_state.copy())

    def orientation_to_yaw(self, q: Sequence[float]) -> float:
        """Yaw of an orientation, unwrapped to be continuous with the previous call."""
        _, _, yaw = quaternion_to_rpy(q)
        yaw = self._last_yaw + shortest_angular_distance(self._last_yaw, yaw)
        self._last_yaw = yaw
        return yaw