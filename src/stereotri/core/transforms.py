from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy.linalg import LinAlgWarning, lu_factor, lu_solve

from stereotri.errors import SingularMatrixError

MatrixInverter = Callable[[np.ndarray], np.ndarray]


def pose_to_transform(alpha: float, beta: float, gamma: float, tx: float, ty: float, tz: float) -> np.ndarray:
    """
    Cardan-Bryant angles (degrees) + translation -> 4x4 homogeneous transform.

    Rotation is the intrinsic X-Y-Z sequence written out entry by entry:
    R = Rz(gamma) @ Ry(beta) @ Rx(alpha).
    """
    a, b, g = np.deg2rad([float(alpha), float(beta), float(gamma)])
    cx, sx = np.cos(a), np.sin(a)
    cy, sy = np.cos(b), np.sin(b)
    cz, sz = np.cos(g), np.sin(g)

    T = np.zeros((4, 4), dtype=np.float64)
    T[0, 0] = cy * cz
    T[0, 1] = sx * sy * cz - cx * sz
    T[0, 2] = cx * sy * cz + sx * sz
    T[1, 0] = cy * sz
    T[1, 1] = sx * sy * sz + cx * cz
    T[1, 2] = cx * sy * sz - sx * cz
    T[2, 0] = -sy
    T[2, 1] = sx * cy
    T[2, 2] = cx * cy
    T[0, 3] = float(tx)
    T[1, 3] = float(ty)
    T[2, 3] = float(tz)
    T[3, 3] = 1.0
    return T


@dataclass(frozen=True)
class CardanBryantPose:
    alpha: float
    beta: float
    gamma: float
    tx: float
    ty: float
    tz: float

    @classmethod
    def from_values(cls, values) -> "CardanBryantPose":
        vals = [float(v) for v in values]
        if len(vals) != 6:
            raise ValueError("a Cardan-Bryant pose needs 6 values (alpha beta gamma tx ty tz)")
        return cls(*vals)

    def to_transform(self) -> np.ndarray:
        return pose_to_transform(self.alpha, self.beta, self.gamma, self.tx, self.ty, self.tz)


def _as_square(a: np.ndarray) -> np.ndarray:
    a = np.asarray(a, dtype=np.float64)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"expected a square matrix, got shape {a.shape}")
    if not np.all(np.isfinite(a)):
        raise SingularMatrixError("matrix has non-finite entries")
    return a


def lu_inverse(a: np.ndarray) -> np.ndarray:
    """
    Invert a small square matrix from its LU factors (partial pivoting).

    A pivot that is zero relative to the largest pivot means the matrix is not
    invertible; that raises SingularMatrixError instead of returning inf/nan.
    """
    a = _as_square(a)
    n = a.shape[0]
    with warnings.catch_warnings():
        # lu_factor only warns on an exactly zero pivot; the check below covers it.
        warnings.simplefilter("ignore", LinAlgWarning)
        lu, piv = lu_factor(a, check_finite=False)
    pivots = np.abs(np.diag(lu))
    scale = float(pivots.max()) if pivots.size else 0.0
    if scale == 0.0 or float(pivots.min()) <= np.finfo(np.float64).eps * n * scale:
        raise SingularMatrixError(f"{n}x{n} matrix is singular (zero pivot in LU factorization)")
    return lu_solve((lu, piv), np.eye(n, dtype=np.float64), check_finite=False)


def numpy_inverse(a: np.ndarray) -> np.ndarray:
    a = _as_square(a)
    try:
        return np.linalg.inv(a)
    except np.linalg.LinAlgError as e:
        raise SingularMatrixError(str(e)) from e


def invert_matrix(a: np.ndarray, inverter: MatrixInverter = lu_inverse) -> np.ndarray:
    """Invert through `inverter`; a non-finite result is reported as singular."""
    inv = np.asarray(inverter(a), dtype=np.float64)
    if not np.all(np.isfinite(inv)):
        raise SingularMatrixError("matrix inverse has non-finite entries")
    return inv


def _as_transform(T: np.ndarray) -> np.ndarray:
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"expected a 4x4 transform, got shape {T.shape}")
    return T


def invert_4x4(T: np.ndarray, inverter: MatrixInverter = lu_inverse) -> np.ndarray:
    return invert_matrix(_as_transform(T), inverter)


def compose(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """A @ B for 4x4 transforms (B is applied first)."""
    return _as_transform(A) @ _as_transform(B)


def apply_transform(T: np.ndarray, xyz: np.ndarray) -> np.ndarray:
    """Apply a homogeneous transform to one point (3,) or many points (N,3)."""
    T = _as_transform(T)
    xyz = np.asarray(xyz, dtype=np.float64)
    pts = xyz.reshape(-1, 3)
    out = pts @ T[:3, :3].T + T[:3, 3]
    return out.reshape(xyz.shape)
