from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

SCHEMA_VERSION = "stereotri.config.v0"

DEFAULT_INITIAL_STEPS: tuple[float, ...] = (1e-3, 1e-3, 1.0, 1e-3, 1e-3, 1.0, 1e-4, 1e-4)


class ConfigValidationError(ValueError):
    pass


class DepthCheckPolicy(str, Enum):
    WARN = "warn"
    RAISE = "raise"
    IGNORE = "ignore"


@dataclass(frozen=True)
class EstimatorConfig:
    max_iterations: int = 200
    tolerance: float = 1e-5
    initial_steps: tuple[float, ...] = DEFAULT_INITIAL_STEPS
    # Fraction of the frame skipped on each border when comparing intensities.
    border_fraction: float = 0.05
    interpolation_order: int = 3
    sample_step: int = 2
    points_file: str = "projection_points.dat"
    report_file: str = "projection_out.dat"
    projected_image_file: str = "right_projected_to_left.tif"
    diff_image_file: str = "projection_diff.tif"


@dataclass(frozen=True)
class ProjectionCheckConfig:
    policy: DepthCheckPolicy = DepthCheckPolicy.WARN
    depth_tolerance: float = 0.1


@dataclass(frozen=True)
class StereoConfig:
    estimator: EstimatorConfig = field(default_factory=EstimatorConfig)
    projection_check: ProjectionCheckConfig = field(default_factory=ProjectionCheckConfig)


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigValidationError(msg)


def _number(section: dict[str, Any], name: str, key: str, default, kind):
    value = section.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"{name}.{key} must be a number, got {value!r}") from e


def default_config() -> StereoConfig:
    return StereoConfig()


def load_config(path: Path) -> StereoConfig:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"{path}: invalid JSON ({e})") from e
    return parse_config(data)


def parse_config(data: dict[str, Any]) -> StereoConfig:
    """
    Build a `StereoConfig` from a plain dict (usually a parsed JSON file).

    Every section is optional; missing keys keep their defaults.
    """
    _require(isinstance(data, dict), "config must be an object")
    schema_version = data.get("schema_version", SCHEMA_VERSION)
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    est = data.get("estimator", {})
    chk = data.get("projection_check", {})
    _require(isinstance(est, dict), "estimator must be an object")
    _require(isinstance(chk, dict), "projection_check must be an object")

    defaults = EstimatorConfig()
    max_iterations = _number(est, "estimator", "max_iterations", defaults.max_iterations, int)
    _require(max_iterations >= 1, "estimator.max_iterations must be >= 1")
    tolerance = _number(est, "estimator", "tolerance", defaults.tolerance, float)
    _require(tolerance > 0.0, "estimator.tolerance must be > 0")

    steps = est.get("initial_steps", list(defaults.initial_steps))
    _require(isinstance(steps, (list, tuple)) and len(steps) == 8, "estimator.initial_steps must hold 8 values")
    try:
        initial_steps = tuple(float(s) for s in steps)
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"estimator.initial_steps must be numbers, got {steps!r}") from e
    _require(all(s != 0.0 for s in initial_steps), "estimator.initial_steps must be non-zero")

    border_fraction = _number(est, "estimator", "border_fraction", defaults.border_fraction, float)
    _require(0.0 <= border_fraction < 0.5, "estimator.border_fraction must be in [0, 0.5)")
    order = _number(est, "estimator", "interpolation_order", defaults.interpolation_order, int)
    _require(1 <= order <= 5, "estimator.interpolation_order must be in [1, 5]")
    sample_step = _number(est, "estimator", "sample_step", defaults.sample_step, int)
    _require(sample_step >= 1, "estimator.sample_step must be >= 1")

    names = {}
    for key in ("points_file", "report_file", "projected_image_file", "diff_image_file"):
        value = str(est.get(key, getattr(defaults, key)))
        _require(len(value) > 0, f"estimator.{key} must be a non-empty file name")
        names[key] = value

    policy_raw = str(chk.get("policy", DepthCheckPolicy.WARN.value))
    _require(
        policy_raw in {p.value for p in DepthCheckPolicy},
        "projection_check.policy must be warn|raise|ignore",
    )
    depth_tolerance = _number(chk, "projection_check", "depth_tolerance", ProjectionCheckConfig.depth_tolerance, float)
    _require(depth_tolerance > 0.0, "projection_check.depth_tolerance must be > 0")

    return StereoConfig(
        estimator=EstimatorConfig(
            max_iterations=max_iterations,
            tolerance=tolerance,
            initial_steps=initial_steps,
            border_fraction=border_fraction,
            interpolation_order=order,
            sample_step=sample_step,
            **names,
        ),
        projection_check=ProjectionCheckConfig(policy=DepthCheckPolicy(policy_raw), depth_tolerance=depth_tolerance),
    )
