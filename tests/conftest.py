from __future__ import annotations

import numpy as np
import pytest

from stereotri.calibration import Calibration, CameraIntrinsics
from stereotri.core.transforms import pose_to_transform

# cx cy fx fy fs k1 k2 k3, camera 0 then camera 1
CAM0_VALUES = (1224.0, 1024.0, 4200.0, 4180.0, 1.5, 0.0, 0.0, 0.0)
CAM1_VALUES = (1210.0, 1030.0, 4150.0, 4160.0, -0.8, 0.0, 0.0, 0.0)
# camera 0 -> camera 1 pose: alpha beta gamma (deg) tx ty tz
STEREO_POSE = (1.2, -18.0, 0.7, 250.0, -3.0, 40.0)


@pytest.fixture
def stereo_calibration() -> Calibration:
    return Calibration(
        intrinsics=(CameraIntrinsics.from_values(CAM0_VALUES), CameraIntrinsics.from_values(CAM1_VALUES)),
        cal_extrinsics=pose_to_transform(*STEREO_POSE),
    )


def write_text_calibration(path, values, comments: bool = True):
    lines = ["# generic text calibration"] if comments else []
    for i, v in enumerate(values):
        lines.append(f"{v!r} # value {i}" if comments and i % 3 == 0 else repr(v))
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)


@pytest.fixture
def write_text_cal():
    return write_text_calibration


# left -> right homography of the synthetic image pair
H_WARP = (1.01, 0.01, 1.5, -0.01, 0.99, -1.0, 1e-5, -1e-5)
WARP_LEFT_POINTS = ((20.0, 20.0), (180.0, 25.0), (175.0, 140.0), (25.0, 135.0), (100.0, 80.0), (60.0, 110.0))


def smooth_texture(x, y):
    return 128.0 + 50.0 * np.sin(x / 14.0 + 0.3) * np.cos(y / 17.0) + 20.0 * np.sin((x + y) / 23.0)


def apply_homography(H, xl, yl):
    a, b, c, d, e, f, g, h = H
    den = g * xl + h * yl + 1.0
    return (a * xl + b * yl + c) / den, (d * xl + e * yl + f) / den


def make_warped_pair(rng, width=200, height=160, pixel_noise=10.0, point_noise=1.0):
    """
    Left image (texture + sensor noise), right image (texture seen through H_WARP)
    and noisy `xl yl xr yr` correspondences.
    """
    yy, xx = np.mgrid[0:height, 0:width].astype(np.float64)
    a, b, c, d, e, f, g, h = H_WARP
    inv = np.linalg.inv(np.array([[a, b, c], [d, e, f], [g, h, 1.0]]))
    den = inv[2, 0] * xx + inv[2, 1] * yy + inv[2, 2]
    x_src = (inv[0, 0] * xx + inv[0, 1] * yy + inv[0, 2]) / den
    y_src = (inv[1, 0] * xx + inv[1, 1] * yy + inv[1, 2]) / den

    left = smooth_texture(xx, yy) + rng.normal(scale=pixel_noise, size=xx.shape)
    right = smooth_texture(x_src, y_src)

    rows = []
    for xl, yl in WARP_LEFT_POINTS:
        xr, yr = apply_homography(H_WARP, xl, yl)
        dx, dy = rng.normal(scale=point_noise, size=2)
        rows.append([xl, yl, xr + dx, yr + dy])
    return left, right, np.array(rows)


@pytest.fixture
def warped_pair():
    return make_warped_pair
