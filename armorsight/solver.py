"""Gimbal command solving from a tracked spinning target."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence

import numpy as np

# Armors closer than this to the origin (metres) cannot be aimed at
_MIN_ARMOR_NORM = 0.1
# Consecutive frames needed to switch between armor and centre tracking
_TRANSFER_THRESH = 5
# Narrowest shooting window, radians
_MIN_SHOOTING_RANGE = 1.0 * math.pi / 180


class TrajectoryCompensator(Protocol):
    """Ballistic model that the solver uses to lead and lift its aim."""

    def flying_time(self, target: np.ndarray) -> float:
        """Seconds a projectile needs to reach the target position."""
        ...

    def compensate(self, target: np.ndarray, pitch: float) -> Optional[float]:
        """Return the pitch that hits the target, or None if none is found."""
        ...

    def trajectory(self, distance: float, angle: float) -> list[tuple[float, float]]:
        """Points (horizontal, vertical) of the flight path for a launch angle."""
        ...


class SolverState(Enum):
    TRACKING_ARMOR = 0
    TRACKING_CENTER = 1


@dataclass
class SolverParams:
    """Tunable parameters of the solver."""

    shooting_range_width: float = 0.135
    shooting_range_height: float = 0.135
    max_tracking_v_yaw: float = 6.0
    prediction_delay: float = 0.0
    controller_delay: float = 0.0
    side_angle: float = 15.0
    min_switching_v_yaw: float = 1.0


@dataclass
class Target:
    """Filtered state of a tracked robot in the world frame."""

    position: tuple[float, float, float]
    velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)
    yaw: float = 0.0
    v_yaw: float = 0.0
    radius_1: float = 0.26
    radius_2: float = 0.26
    dz: float = 0.0
    armors_num: int = 4
    id: str = ""


@dataclass
class GimbalCmd:
    """Aim command: absolute angles and differences from the gimbal, in degrees."""

    yaw: float = 0.0
    pitch: float = 0.0
    yaw_diff: float = 0.0
    pitch_diff: float = 0.0
    distance: float = -1.0
    fire_advice: bool = False


class Solver:
    """Chooses an armor on the target and computes where the gimbal should aim."""

    def __init__(
        self, compensator: TrajectoryCompensator, params: Optional[SolverParams] = None
    ) -> None:
        self.compensator = compensator
        self.params = params if params is not None else SolverParams()
        self.state = SolverState.TRACKING_ARMOR
        self.transfer_thresh = _TRANSFER_THRESH
        self._overflow_count = 0

    def solve(
        self, target: Target, gimbal_rpy: Sequence[float], elapsed: float
    ) -> GimbalCmd:
        """Compute the gimbal command.

        ``gimbal_rpy`` is the current (roll, pitch, yaw) of the gimbal in radians
        and ``elapsed`` the seconds since the target state was stamped.
        Raises ValueError when the chosen armor is too close to aim at.
        """
        params = self.params
        _, cur_pitch, cur_yaw = (float(v) for v in gimbal_rpy)
        velocity = np.asarray(target.velocity, dtype=float)

        target_position = np.asarray(target.position, dtype=float).copy()
        target_yaw = float(target.yaw)
        flying_time = float(self.compensator.flying_time(target_position))
        dt = elapsed + flying_time + params.prediction_delay
        target_position += dt * velocity
        target_yaw += dt * target.v_yaw

        positions = self.armor_positions(
            target_position, target_yaw, target.radius_1, target.radius_2, target.dz,
            target.armors_num,
        )
        idx = self.select_best_armor(
            positions, target_position, target_yaw, target.v_yaw, target.armors_num
        )
        chosen = positions[idx]
        if np.linalg.norm(chosen) < _MIN_ARMOR_NORM:
            raise ValueError("No valid armor to shoot")

        yaw, pitch = self.calc_yaw_and_pitch(chosen)
        distance = float(np.linalg.norm(chosen))

        cmd = GimbalCmd(distance=distance)
        cmd.fire_advice = self.is_on_target(cur_yaw, cur_pitch, yaw, pitch, distance)

        if self.state is SolverState.TRACKING_ARMOR:
            if abs(target.v_yaw) > params.max_tracking_v_yaw:
                self._overflow_count += 1
            else:
                self._overflow_count = 0
            if self._overflow_count > self.transfer_thresh:
                self.state = SolverState.TRACKING_CENTER

            if params.controller_delay != 0:
                target_position += params.controller_delay * velocity
                target_yaw += params.controller_delay * target.v_yaw
                positions = self.armor_positions(
                    target_position, target_yaw, target.radius_1, target.radius_2,
                    target.dz, target.armors_num,
                )
                chosen = positions[idx]
                if np.linalg.norm(chosen) < _MIN_ARMOR_NORM:
                    raise ValueError("No valid armor to shoot")
                yaw, pitch = self.calc_yaw_and_pitch(chosen)
        else:
            if abs(target.v_yaw) < params.max_tracking_v_yaw:
                self._overflow_count += 1
            else:
                self._overflow_count = 0
            if self._overflow_count > self.transfer_thresh:
                self.state = SolverState.TRACKING_ARMOR
                self._overflow_count = 0
            cmd.fire_advice = True
            yaw, pitch = self.calc_yaw_and_pitch(target_position)

        cmd.yaw = math.degrees(yaw)
        cmd.pitch = math.degrees(pitch)
        cmd.yaw_diff = math.degrees(yaw - cur_yaw)
        cmd.pitch_diff = math.degrees(pitch - cur_pitch)
        return cmd

    def trajectory(self, distance: float, angle: float) -> list[tuple[float, float]]:
        """Flight path of a projectile, as given by the compensator."""
        return list(self.compensator.trajectory(distance, angle))

    def armor_positions(
        self,
        target_center: Sequence[float],
        target_yaw: float,
        r1: float,
        r2: float,
        dz: float,
        armors_num: int,
    ) -> list[np.ndarray]:
        """Positions of every armor around the robot centre."""
        if armors_num < 1:
            raise ValueError("armors_num must be at least 1")
        center = np.asarray(target_center, dtype=float)
        positions = []
        is_current_pair = True
        for i in range(armors_num):
            temp_yaw = target_yaw + i * (2 * math.pi / armors_num)
            if armors_num == 4:
                r = r1 if is_current_pair else r2
                target_dz = 0.0 if is_current_pair else dz
                is_current_pair = not is_current_pair
            else:
                r = r1
                target_dz = dz
            offset = np.array([-r * math.cos(temp_yaw), -r * math.sin(temp_yaw), target_dz])
            positions.append(center + offset)
        return positions

    def select_best_armor(
        self,
        armor_positions: Sequence[np.ndarray],
        target_center: Sequence[float],
        target_yaw: float,
        target_v_yaw: float,
        armors_num: int,
    ) -> int:
        """Index in ``0 .. armors_num - 1`` of the armor to shoot."""
        if armors_num < 1:
            raise ValueError("armors_num must be at least 1")
        center = np.asarray(target_center, dtype=float)
        alpha = math.atan2(center[1], center[0])
        beta = target_yaw

        r_odom2center = np.array(
            [[math.cos(alpha), math.sin(alpha)], [-math.sin(alpha), math.cos(alpha)]]
        )
        r_odom2armor = np.array(
            [[math.cos(beta), math.sin(beta)], [-math.sin(beta), math.cos(beta)]]
        )
        r_center2armor = r_odom2center.T @ r_odom2armor
        decision_angle = -math.asin(max(-1.0, min(1.0, float(r_center2armor[0, 1]))))

        side = self.params.side_angle
        theta = (side if target_v_yaw > 0 else -side) / 180.0 * math.pi
        # Avoid switching back and forth between two armors
        if abs(target_v_yaw) < self.params.min_switching_v_yaw:
            theta = 0.0

        temp_angle = decision_angle + math.pi / armors_num - theta
        if temp_angle < 0:
            temp_angle += 2 * math.pi
        return int(temp_angle / (2 * math.pi / armors_num))

    def calc_yaw_and_pitch(self, p: Sequence[float]) -> tuple[float, float]:
        """Yaw and pitch (radians) aiming at ``p``, pitch lifted by the compensator."""
        point = np.asarray(p, dtype=float)
        yaw = math.atan2(point[1], point[0])
        pitch = math.atan2(point[2], math.hypot(point[0], point[1]))
        compensated = self.compensator.compensate(point, pitch)
        if compensated is not None:
            pitch = float(compensated)
        return yaw, pitch

    def is_on_target(
        self,
        cur_yaw: float,
        cur_pitch: float,
        target_yaw: float,
        target_pitch: float,
        distance: float,
    ) -> bool:
        """Whether the gimbal points within the armor's shooting window."""
        range_yaw = abs(math.atan2(self.params.shooting_range_width / 2, distance))
        range_pitch = abs(math.atan2(self.params.shooting_range_height / 2, distance))
        range_yaw = max(range_yaw, _MIN_SHOOTING_RANGE)
        range_pitch = max(range_pitch, _MIN_SHOOTING_RANGE)
        return abs(cur_yaw - target_yaw) < range_yaw and abs(cur_pitch - target_pitch) < range_pitch