"""Armor plate detection, number classification, target tracking and gimbal aiming."""

__version__ = "0.1.0"

__all__ = [
    "geometry",
    "types",
    "corner_corrector",
    "classifier",
    "detector",
    "motion_model",
    "tracker",
    "solver",
]