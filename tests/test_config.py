import json

import pytest

from stereotri.config import (
    ConfigValidationError,
    DepthCheckPolicy,
    EstimatorConfig,
    default_config,
    load_config,
    parse_config,
)


def test_parse_config_ok():
    cfg = parse_config(
        {
            "schema_version": "stereotri.config.v0",
            "estimator": {"max_iterations": 500, "tolerance": 1e-6, "sample_step": 1, "report_file": "h.txt"},
            "projection_check": {"policy": "raise", "depth_tolerance": 0.01},
        }
    )
    assert cfg.estimator.max_iterations == 500
    assert cfg.estimator.tolerance == pytest.approx(1e-6)
    assert cfg.estimator.report_file == "h.txt"
    assert cfg.estimator.points_file == "projection_points.dat"
    assert cfg.projection_check.policy is DepthCheckPolicy.RAISE
    assert cfg.projection_check.depth_tolerance == pytest.approx(0.01)


def test_defaults():
    cfg = parse_config({})
    assert cfg == default_config()
    assert cfg.estimator == EstimatorConfig()
    assert cfg.estimator.max_iterations == 200
    assert cfg.estimator.tolerance == pytest.approx(1e-5)
    assert cfg.estimator.initial_steps[2] == 1.0 and cfg.estimator.initial_steps[6] == 1e-4
    assert cfg.projection_check.policy is DepthCheckPolicy.WARN


@pytest.mark.parametrize(
    "data",
    [
        {"schema_version": "other"},
        {"estimator": {"max_iterations": 0}},
        {"estimator": {"tolerance": -1.0}},
        {"estimator": {"initial_steps": [1.0, 1.0]}},
        {"estimator": {"initial_steps": [0.0] * 8}},
        {"estimator": {"border_fraction": 0.5}},
        {"estimator": {"interpolation_order": 7}},
        {"estimator": {"report_file": ""}},
        {"projection_check": {"policy": "explode"}},
        {"projection_check": {"depth_tolerance": 0.0}},
        {"estimator": {"max_iterations": "many"}},
        {"estimator": {"tolerance": None}},
        {"estimator": {"initial_steps": ["a"] * 8}},
        {"projection_check": {"depth_tolerance": [0.1]}},
    ],
)
def test_parse_config_rejects_invalid(data):
    with pytest.raises(ConfigValidationError):
        parse_config(data)


def test_load_config(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"estimator": {"border_fraction": 0.1}}), encoding="utf-8")
    assert load_config(path).estimator.border_fraction == pytest.approx(0.1)


def test_load_config_malformed_json(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text('{"estimator": {', encoding="utf-8")
    with pytest.raises(ConfigValidationError, match="invalid JSON"):
        load_config(path)
