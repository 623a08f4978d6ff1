"""Constant-velocity spinning-target model for the armor tracking filter.

The state is ``[xc, v_xc, yc, v_yc, za, v_za, yaw, v_yaw, r]``: the robot centre
and its velocity, the armor height and its rate, the armor yaw and its rate,
and the rotation radius. The measurement is ``[xa, ya, za, yaw]`` of one armor.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

STATE_SIZE = 9
MEASUREMENT_SIZE = 4


@dataclass(frozen=True)
class ProcessNoise:
    """Variances of the process noise for each state group."""

    x: float = 20.0
    y: float = 20.0
    z: float = 20.0
    yaw: float = 100.0
    r: float = 800.0


@dataclass(frozen=True)
class MeasurementNoise:
    """Measurement noise factors; position terms scale with the measured value."""

    x: float = 0.05
    y: float = 0.05
    z: float = 0.05
    yaw: float = 0.02


def _state(x: Sequence[float]) -> np.ndarray:
    arr = np.asarray(x, dtype=float).reshape(-1)
    if arr.size != STATE_SIZE:
        raise ValueError(f"state must have {STATE_SIZE} elements, got {arr.size}")
    return arr


def _measurement(z: Sequence[float]) -> np.ndarray:
    arr = np.asarray(z, dtype=float).reshape(-1)
    if arr.size != MEASUREMENT_SIZE:
        raise ValueError(f"measurement must have {MEASUREMENT_SIZE} elements, got {arr.size}")
    return arr


def transition(x: Sequence[float], dt: float) -> np.ndarray:
    """Advance the state by ``dt`` seconds at constant velocity."""
    new = _state(x).copy()
    for pos in (0, 2, 4, 6):
        new[pos] += new[pos + 1] * dt
    return new


def transition_jacobian(x: Sequence[float], dt: float) -> np.ndarray:
    """Jacobian of :func:`transition`; it does not depend on the state."""
    _state(x)
    jac = np.eye(STATE_SIZE)
    for pos in (0, 2, 4, 6):
        jac[pos, pos + 1] = dt
    return jac


def observe(x: Sequence[float]) -> np.ndarray:
    """Predict the armor measurement ``[xa, ya, za, yaw]`` from a state."""
    s = _state(x)
    xc, yc, za, yaw, r = s[0], s[2], s[4], s[6], s[8]
    return np.array([xc - r * math.cos(yaw), yc - r * math.sin(yaw), za, yaw])


def observation_jacobian(x: Sequence[float]) -> np.ndarray:
    """Jacobian of :func:`observe` with respect to the state."""
    s = _state(x)
    yaw, r = s[6], s[8]
    jac = np.zeros((MEASUREMENT_SIZE, STATE_SIZE))
    jac[0, 0] = 1.0
    jac[0, 6] = r * math.sin(yaw)
    jac[0, 8] = -math.cos(yaw)
    jac[1, 2] = 1.0
    jac[1, 6] = -r * math.cos(yaw)
    jac[1, 8] = -math.sin(yaw)
    jac[2, 4] = 1.0
    jac[3, 6] = 1.0
    return jac


def process_noise(dt: float, noise: ProcessNoise | None = None) -> np.ndarray:
    """Process noise covariance for a step of ``dt`` seconds.

    The height block and the yaw cross term take the x variance, as the
    tracker has always done.
    """
    n = noise if noise is not None else ProcessNoise()
    t = dt
    q = np.zeros((STATE_SIZE, STATE_SIZE))

    def block(pos: int, pp: float, pv: float, vv: float) -> None:
        q[pos, pos] = pp
        q[pos, pos + 1] = q[pos + 1, pos] = pv
        q[pos + 1, pos + 1] = vv

    block(0, t**4 / 4 * n.x, t**3 / 2 * n.x, t**2 * n.x)
    block(2, t**4 / 4 * n.y, t**3 / 2 * n.y, t**2 * n.y)
    block(4, t**4 / 4 * n.x, t**3 / 2 * n.x, t**2 * n.z)
    block(6, t**4 / 4 * n.yaw, t**3 / 2 * n.x, t**2 * n.yaw)
    q[8, 8] = t**4 / 4 * n.r
    return q


def measurement_noise(z: Sequence[float], noise: MeasurementNoise | None = None) -> np.ndarray:
    """Diagonal measurement noise covariance for the measurement ``z``."""
    n = noise if noise is not None else MeasurementNoise()
    m = _measurement(z)
    return np.diag([abs(n.x * m[0]), abs(n.y * m[1]), abs(n.z * m[2]), n.yaw])