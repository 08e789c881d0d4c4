from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from stereotri.calibration import Calibration, load_calibration
from stereotri.config import DepthCheckPolicy, StereoConfig
from stereotri.core.distortion import correct_radial
from stereotri.core.image_io import GrayImage
from stereotri.core.stereo import (
    TriangulationWorkspace,
    build_design_system,
    camera0_projection_matrix,
    camera1_projection_matrix,
    project_homogeneous,
    solve_least_squares,
)
from stereotri.core.transforms import MatrixInverter, lu_inverse
from stereotri.errors import NotInitializedError, ProjectionDepthError
from stereotri.homography import HomographyEstimate, ProjectiveTransform, ProjectiveTransformEstimator
from stereotri.optimize import Optimizer

logger = logging.getLogger(__name__)

_CAMERA0_DEPTH_ROW = np.array([0.0, 0.0, 1.0, 0.0], dtype=np.float64)


@dataclass(frozen=True)
class TriangulatedPoint:
    xyz_cam0: np.ndarray  # (3,)
    xyz_world: np.ndarray  # (3,)


class Triangulation:
    """
    Stereo triangulation context: owns the calibration and the left -> right
    projective transform.

    Reads take one snapshot of the current calibration/transform per call, so
    triangulation and projection may run from several threads while another
    thread reloads; a reload parses completely before it swaps the reference.
    """

    def __init__(
        self,
        calibration: Calibration | None = None,
        config: StereoConfig | None = None,
        inverter: MatrixInverter = lu_inverse,
    ) -> None:
        self.config = config if config is not None else StereoConfig()
        self.inverter = inverter
        self._calibration = calibration
        self._projective: ProjectiveTransform | None = None
        self._write_lock = threading.Lock()
        self._local = threading.local()

    @classmethod
    def from_file(cls, path: str | Path, config: StereoConfig | None = None) -> "Triangulation":
        return cls(load_calibration(path), config=config)

    @property
    def calibration(self) -> Calibration:
        calib = self._calibration
        if calib is None:
            raise NotInitializedError("no calibration loaded")
        return calib

    @property
    def projective_transform(self) -> ProjectiveTransform:
        proj = self._projective
        if proj is None:
            raise NotInitializedError("projective transform has not been estimated")
        return proj

    def load_calibration_parameters(self, path: str | Path) -> Calibration:
        calib = load_calibration(path)
        self.set_calibration(calib)
        return calib

    def set_calibration(self, calibration: Calibration) -> None:
        with self._write_lock:
            self._calibration = calibration

    def set_projective_transform(self, params) -> ProjectiveTransform:
        proj = params if isinstance(params, ProjectiveTransform) else ProjectiveTransform(params)
        with self._write_lock:
            self._projective = proj
        return proj

    def _workspace(self) -> TriangulationWorkspace:
        ws = getattr(self._local, "workspace", None)
        if ws is None:
            ws = TriangulationWorkspace()
            self._local.workspace = ws
        return ws

    def correct_lens_distortion_radial(self, x_s, y_s, camera_id: int):
        return correct_radial(self.calibration.camera(camera_id), x_s, y_s)

    def triangulate(
        self,
        x0: float,
        y0: float,
        x1: float,
        y1: float,
        correct_lens_distortion: bool = False,
    ) -> TriangulatedPoint:
        """
        3D point from a matched pair of sensor coordinates (camera 0, camera 1).

        Returns the point in camera 0 coordinates and in world coordinates.
        """
        calib = self.calibration
        if correct_lens_distortion:
            x0, y0 = correct_radial(calib.intrinsics[0], x0, y0)
            x1, y1 = correct_radial(calib.intrinsics[1], x1, y1)
            logger.debug("distortion corrected sensor coords %g %g / %g %g", x0, y0, x1, y1)

        ws = self._workspace()
        M, r = build_design_system(calib, x0, y0, x1, y1, out=ws)
        xyz_h = ws.xyz_h
        xyz_h[:3] = solve_least_squares(M, r, inverter=self.inverter)
        xyz_h[3] = 1.0
        xyz_world = calib.trans_extrinsics @ xyz_h
        logger.debug("camera 0 coordinates %s world coordinates %s", xyz_h[:3], xyz_world[:3])
        return TriangulatedPoint(xyz_cam0=xyz_h[:3].copy(), xyz_world=xyz_world[:3].copy())

    def triangulate_points(
        self,
        uv0: np.ndarray,
        uv1: np.ndarray,
        correct_lens_distortion: bool = False,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Batch form of `triangulate`; returns (XYZ_cam0, XYZ_world), each (N,3)."""
        uv0 = np.asarray(uv0, dtype=np.float64).reshape(-1, 2)
        uv1 = np.asarray(uv1, dtype=np.float64).reshape(-1, 2)
        if uv0.shape[0] != uv1.shape[0]:
            raise ValueError("uv0 and uv1 must have the same length")
        xyz_cam = np.empty((uv0.shape[0], 3), dtype=np.float64)
        xyz_world = np.empty((uv0.shape[0], 3), dtype=np.float64)
        for i, ((x0, y0), (x1, y1)) in enumerate(zip(uv0, uv1)):
            pt = self.triangulate(x0, y0, x1, y1, correct_lens_distortion=correct_lens_distortion)
            xyz_cam[i] = pt.xyz_cam0
            xyz_world[i] = pt.xyz_world
        return xyz_cam, xyz_world

    def project_camera_0_to_sensor_0(self, xc: float, yc: float, zc: float) -> tuple[float, float]:
        P = camera0_projection_matrix(self.calibration)
        xs, ys, _ = project_homogeneous(P, _CAMERA0_DEPTH_ROW, (xc, yc, zc))
        return xs, ys

    def project_camera_0_to_sensor_1(self, xc: float, yc: float, zc: float) -> tuple[float, float]:
        calib = self.calibration
        P = camera1_projection_matrix(calib)
        xs, ys, z = project_homogeneous(P, calib.cal_extrinsics[2], (xc, yc, zc))
        self._check_depth(z)
        return xs, ys

    def _check_depth(self, z: float) -> None:
        chk = self.config.projection_check
        if chk.policy is DepthCheckPolicy.IGNORE or abs(z - 1.0) < chk.depth_tolerance:
            return
        msg = f"projected homogeneous depth {z:g} deviates from 1 (tolerance {chk.depth_tolerance:g})"
        if chk.policy is DepthCheckPolicy.RAISE:
            raise ProjectionDepthError(msg)
        logger.warning(msg)

    def project_left_to_right_sensor_coords(self, xl, yl):
        return self.projective_transform.map(xl, yl)

    def estimate_projective_transform(
        self,
        left: GrayImage,
        right: GrayImage,
        output_projected_image: bool = False,
        points_path: str | Path | None = None,
        out_dir: str | Path | None = None,
        optimizer: Optimizer | None = None,
    ) -> HomographyEstimate:
        estimator = ProjectiveTransformEstimator(self.config.estimator, optimizer=optimizer, inverter=self.inverter)
        result = estimator.estimate(
            left,
            right,
            output_projected_image=output_projected_image,
            points_path=points_path,
            out_dir=out_dir,
        )
        self.set_projective_transform(result.refined)
        return result
