from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from stereotri.calibration import Calibration
from stereotri.core.transforms import MatrixInverter, invert_matrix, lu_inverse
from stereotri.errors import ProjectionDepthError


@dataclass
class TriangulationWorkspace:
    """
    Scratch arrays for one triangulation at a time.

    Owned by a single caller (or thread); never share one across concurrent calls.
    """

    M: np.ndarray = field(default_factory=lambda: np.zeros((4, 3), dtype=np.float64))
    r: np.ndarray = field(default_factory=lambda: np.zeros((4,), dtype=np.float64))
    xyz_h: np.ndarray = field(default_factory=lambda: np.zeros((4,), dtype=np.float64))


def build_design_system(
    calib: Calibration,
    x0: float,
    y0: float,
    x1: float,
    y1: float,
    out: TriangulationWorkspace | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Linear stereo ray-intersection system M @ X_0 = r for one correspondence.

    Rows 0-1 come from the camera 0 pinhole model (camera 0 is the reference
    frame), rows 2-3 from camera 1 through the camera 0 -> camera 1 transform.
    """
    ws = out if out is not None else TriangulationWorkspace()
    M = ws.M
    r = ws.r
    M.fill(0.0)
    r.fill(0.0)

    c0, c1 = calib.intrinsics
    T = calib.cal_extrinsics
    R = T[:3, :3]
    t = T[:3, 3]

    M[0, 0] = c0.fx
    M[0, 1] = c0.fs
    M[0, 2] = c0.cx - x0
    M[1, 1] = c0.fy
    M[1, 2] = c0.cy - y0

    cmx = c1.cx - x1
    cmy = c1.cy - y1
    M[2, :] = cmx * R[2, :] + c1.fx * R[0, :] + c1.fs * R[1, :]
    M[3, :] = cmy * R[2, :] + c1.fy * R[1, :]
    r[2] = -c1.fx * t[0] - c1.fs * t[1] - cmx * t[2]
    r[3] = -c1.fy * t[1] - cmy * t[2]
    return M, r


def solve_least_squares(M: np.ndarray, r: np.ndarray, inverter: MatrixInverter = lu_inverse) -> np.ndarray:
    """Normal-equations solution (M^T M)^-1 M^T r."""
    MTM_inv = invert_matrix(M.T @ M, inverter)
    return (MTM_inv @ M.T) @ r


def camera0_projection_matrix(calib: Calibration) -> np.ndarray:
    c0 = calib.intrinsics[0]
    return np.array(
        [[c0.fx, c0.fs, c0.cx, 0.0], [0.0, c0.fy, c0.cy, 0.0], [0.0, 0.0, 1.0, 0.0]],
        dtype=np.float64,
    )


def camera1_projection_matrix(calib: Calibration) -> np.ndarray:
    """3x4 camera 1 projection of camera 0 coordinates: F1 @ cal_extrinsics."""
    c1 = calib.intrinsics[1]
    F1 = np.array(
        [[c1.fx, c1.fs, c1.cx, 0.0], [0.0, c1.fy, c1.cy, 0.0], [0.0, 0.0, 1.0, 0.0]],
        dtype=np.float64,
    )
    return F1 @ calib.cal_extrinsics


def project_homogeneous(P: np.ndarray, depth_row: np.ndarray, xyz: np.ndarray) -> tuple[float, float, float]:
    """
    Perspective projection with an explicit depth term.

    Returns (xs, ys, z) where z is the recovered homogeneous depth (~1 for a
    consistent projection matrix).
    """
    X = np.array([xyz[0], xyz[1], xyz[2], 1.0], dtype=np.float64)
    psi = float(depth_row @ X)
    if psi == 0.0:
        raise ProjectionDepthError(f"point {tuple(float(v) for v in xyz)} has zero depth in the target camera")
    p = (P @ X) / psi
    return float(p[0]), float(p[1]), float(p[2])


def project_homography(params: np.ndarray, xl, yl):
    """Apply the 8-parameter planar homography [a,b,c,d,e,f,g,h] to left sensor coordinates."""
    a, b, c, d, e, f, g, h = (float(v) for v in np.asarray(params, dtype=np.float64).reshape(8))
    x = np.asarray(xl, dtype=np.float64)
    y = np.asarray(yl, dtype=np.float64)
    den = g * x + h * y + 1.0
    xr = (a * x + b * y + c) / den
    yr = (d * x + e * y + f) / den
    if xr.ndim == 0:
        return float(xr), float(yr)
    return xr, yr
