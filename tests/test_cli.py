from __future__ import annotations

import json

import numpy as np
import pytest
from numpy.testing import assert_allclose

from stereotri.api.triangulation import Triangulation
from stereotri.cli.main import main
from stereotri.core.image_io import write_image

VALUES = [1000.0, 800.0, 3000.0, 3000.0, 0.0, 0.0, 0.0, 0.0] * 2 + [0.0, 0.0, 0.0, 100.0, 0.0, 0.0]


def test_cli_triangulate(tmp_path, write_text_cal, capsys):
    cal = write_text_cal(tmp_path / "cal.txt", VALUES)
    tri = Triangulation.from_file(cal)
    X = np.array([[10.0, 20.0, 1000.0], [-40.0, 5.0, 1200.0]])
    rows = [(*tri.project_camera_0_to_sensor_0(*p), *tri.project_camera_0_to_sensor_1(*p)) for p in X]
    points = tmp_path / "matches.dat"
    points.write_text("\n".join(" ".join(f"{v:.12f}" for v in r) for r in rows) + "\n", encoding="utf-8")
    out = tmp_path / "xyz.csv"

    assert main(["triangulate", str(cal), str(points), "--out", str(out)]) == 0
    assert f"Wrote {out}" in capsys.readouterr().out
    assert out.read_text(encoding="utf-8").splitlines()[0] == "xc,yc,zc,xw,yw,zw"
    got = np.loadtxt(out, delimiter=",", skiprows=1)
    assert got.shape == (2, 6)
    assert_allclose(got[:, :3], X, rtol=1e-6)
    assert_allclose(got[:, 3:], X, rtol=1e-6)


def test_cli_project(tmp_path, write_text_cal, capsys):
    cal = write_text_cal(tmp_path / "cal.txt", VALUES)
    assert main(["project", str(cal), "0", "0", "1000"]) == 0
    xs, ys = (float(v) for v in capsys.readouterr().out.split())
    # camera 1 is shifted 100 along x
    assert xs == pytest.approx(1000.0 + 3000.0 * 100.0 / 1000.0)
    assert ys == pytest.approx(800.0)


def test_cli_export_calibration(tmp_path, write_text_cal):
    cal = write_text_cal(tmp_path / "cal.txt", VALUES)
    out = tmp_path / "cal.json"
    assert main(["export-calibration", str(cal), str(out)]) == 0
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["schema_version"] == "stereotri.calibration.v0"
    assert data["cameras"][0]["cx"] == pytest.approx(1000.0)
    assert Triangulation.from_file(out).calibration.cal_extrinsics[0, 3] == pytest.approx(100.0)


def test_cli_bad_config_is_rejected(tmp_path, write_text_cal):
    cal = write_text_cal(tmp_path / "cal.txt", VALUES)
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"schema_version": "nope"}), encoding="utf-8")
    with pytest.raises(ValueError):
        main(["--config", str(cfg), "project", str(cal), "0", "0", "1000"])


def test_cli_estimate_homography(tmp_path, rng, warped_pair, capsys):
    left, right, pts = warped_pair(rng)
    left_path = write_image(tmp_path / "left.tif", left)
    right_path = write_image(tmp_path / "right.tif", right)
    points = tmp_path / "matches.dat"
    points.write_text("\n".join(" ".join(f"{v:.6f}" for v in r) for r in pts) + "\n", encoding="utf-8")
    cfg = tmp_path / "cfg.json"
    cfg.write_text(json.dumps({"estimator": {"max_iterations": 1000}}), encoding="utf-8")
    out_dir = tmp_path / "out"

    argv = ["--config", str(cfg), "estimate-homography", str(left_path), str(right_path)]
    argv += ["--points", str(points), "--out-dir", str(out_dir), "--diagnostic-images"]
    assert main(argv) == 0

    printed = capsys.readouterr().out.splitlines()
    assert len(printed[0].split()) == 8
    assert printed[-1] == f"Wrote {out_dir / 'projection_out.dat'}"
    report = (out_dir / "projection_out.dat").read_text(encoding="utf-8").splitlines()
    assert len(report) == 19
    assert (out_dir / "right_projected_to_left.tif").exists()
    assert (out_dir / "projection_diff.tif").exists()
