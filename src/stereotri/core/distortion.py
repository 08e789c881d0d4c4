from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from stereotri.calibration import CameraIntrinsics


@dataclass(frozen=True)
class RadialDistortion:
    """
    Radial polynomial on the squared normalized radius rho = r1^2 + r2^2.

    The sensor offset is normalized by the principal point itself
    (r1 = (x - cx) / cx, r2 = (y - cy) / cy), as in VIC-3D style calibrations.
    """

    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0

    @classmethod
    def from_intrinsics(cls, intr: "CameraIntrinsics") -> "RadialDistortion":
        return cls(k1=float(intr.k1), k2=float(intr.k2), k3=float(intr.k3))

    def factor(self, rho: np.ndarray) -> np.ndarray:
        rho = np.asarray(rho, dtype=np.float64)
        return self.k1 * rho + self.k2 * rho * rho + self.k3 * rho * rho * rho


def correct_radial(intr: "CameraIntrinsics", x_s, y_s):
    """
    Single-pass radial correction of sensor coordinates for one camera.

    Approximate inverse of the distortion polynomial: one evaluation at the
    observed (distorted) position, no fixed-point iteration.
    Accepts scalars or arrays and returns the same kind.
    """
    cx = float(intr.cx)
    cy = float(intr.cy)
    x = np.asarray(x_s, dtype=np.float64)
    y = np.asarray(y_s, dtype=np.float64)

    r1 = (x - cx) / cx
    r2 = (y - cy) / cy
    rho = r1 * r1 + r2 * r2
    f = RadialDistortion.from_intrinsics(intr).factor(rho)
    xc = x - f * r1 * cx
    yc = y - f * r2 * cy
    if xc.ndim == 0:
        return float(xc), float(yc)
    return xc, yc
