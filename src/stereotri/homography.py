"""
Left -> right projective transform (8-parameter homography) estimation.

Used when no metric calibration is available: an initial estimate comes from
point correspondences (direct linear transform, normal equations), then the
parameters are refined by minimizing the intensity mismatch between the left
image and the right image resampled through the homography.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from stereotri.config import EstimatorConfig
from stereotri.core.image_io import GrayImage, write_image
from stereotri.core.stereo import project_homography
from stereotri.core.transforms import MatrixInverter, invert_matrix, lu_inverse
from stereotri.errors import InsufficientDataError, OptimizationError, ParseError
from stereotri.optimize import NelderMeadOptimizer, Optimizer

logger = logging.getLogger(__name__)

NUM_PARAMS = 8
MIN_CORRESPONDENCES = 4
FULL_SCALE = 255.0


@dataclass(frozen=True)
class ProjectiveTransform:
    """Coefficients [a,b,c,d,e,f,g,h]: xr = (a xl + b yl + c) / (g xl + h yl + 1), same denominator for yr."""

    coeffs: np.ndarray

    def __post_init__(self) -> None:
        c = np.array(self.coeffs, dtype=np.float64, copy=True).reshape(-1)
        if c.size != NUM_PARAMS:
            raise ValueError(f"a projective transform has {NUM_PARAMS} coefficients, got {c.size}")
        c.setflags(write=False)
        object.__setattr__(self, "coeffs", c)

    def map(self, xl, yl):
        return project_homography(self.coeffs, xl, yl)


@dataclass(frozen=True)
class HomographyEstimate:
    dlt: ProjectiveTransform
    refined: ProjectiveTransform
    iterations: int
    mismatch: float


def read_correspondences(path: str | Path, min_points: int = MIN_CORRESPONDENCES) -> np.ndarray:
    """
    Read `xl yl xr yr` rows (whitespace separated, one correspondence per line).

    Blank lines and lines starting with '#' are skipped. Returns an (N,4) array.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"could not open correspondence file {p}") from e

    rows: list[list[float]] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        tokens = line.split()
        if not tokens or tokens[0].startswith("#"):
            continue
        if len(tokens) != 4:
            raise ParseError(
                f"{p}: should be 4 values per line (x_left y_left x_right y_right), "
                f"but found {len(tokens)} values on line {lineno}"
            )
        try:
            rows.append([float(t) for t in tokens])
        except ValueError as e:
            raise ParseError(f"{p}: non-numeric value on line {lineno}") from e

    logger.debug("found %d correspondences in %s", len(rows), p)
    if len(rows) < min_points:
        raise InsufficientDataError(f"{p}: {len(rows)} correspondences, at least {min_points} needed")
    return np.asarray(rows, dtype=np.float64).reshape(-1, 4)


def dlt_system(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """(2N,8) design matrix and (2N,) target of the linearized homography."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 4)
    xl, yl, xr, yr = pts.T
    n = pts.shape[0]
    K = np.zeros((2 * n, NUM_PARAMS), dtype=np.float64)
    F = np.zeros((2 * n,), dtype=np.float64)

    K[0::2, 0] = xl
    K[0::2, 1] = yl
    K[0::2, 2] = 1.0
    K[0::2, 6] = -xl * xr
    K[0::2, 7] = -yl * xr
    K[1::2, 3] = xl
    K[1::2, 4] = yl
    K[1::2, 5] = 1.0
    K[1::2, 6] = -xl * yr
    K[1::2, 7] = -yl * yr
    F[0::2] = xr
    F[1::2] = yr
    return K, F


def estimate_dlt(points: np.ndarray, inverter: MatrixInverter = lu_inverse) -> ProjectiveTransform:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 4)
    if pts.shape[0] < MIN_CORRESPONDENCES:
        raise InsufficientDataError(f"{pts.shape[0]} correspondences, at least {MIN_CORRESPONDENCES} needed")
    K, F = dlt_system(pts)
    KTK_inv = invert_matrix(K.T @ K, inverter)
    return ProjectiveTransform(KTK_inv @ (K.T @ F))


def central_region(width: int, height: int, border_fraction: float, step: int = 1) -> tuple[np.ndarray, np.ndarray]:
    """Pixel columns/rows of the frame with `border_fraction` removed on each side."""
    xs = np.arange(int(border_fraction * width), int(np.ceil((1.0 - border_fraction) * width)), int(step))
    ys = np.arange(int(border_fraction * height), int(np.ceil((1.0 - border_fraction) * height)), int(step))
    return xs, ys


def intensity_mismatch(params: np.ndarray, left: GrayImage, right: GrayImage, xs: np.ndarray, ys: np.ndarray) -> float:
    """
    Mean squared intensity difference (full-scale units) between the left image
    and the right image resampled through `params`, over the grid xs × ys.
    """
    xx, yy = np.meshgrid(xs.astype(np.float64), ys.astype(np.float64))
    xr, yr = project_homography(params, xx, yy)
    sampled = right.interpolate(xr, yr)
    ref = left.intensities[np.ix_(ys, xs)]
    valid = np.isfinite(sampled)
    if not np.any(valid):
        return float("inf")
    d = (ref[valid] - sampled[valid]) / FULL_SCALE
    return float(np.mean(d * d))


def resample_right_into_left(params: np.ndarray, left: GrayImage, right: GrayImage, border_fraction: float) -> tuple[np.ndarray, np.ndarray]:
    """
    Right image resampled into the left frame and the left-minus-resampled difference.

    Only the central part of the frame is filled; each pixel is independent so
    the whole grid is evaluated in one vectorized pass.
    """
    w, h = left.width, left.height
    projected = np.zeros((h, w), dtype=np.float64)
    diff = np.zeros((h, w), dtype=np.float64)
    xs, ys = central_region(w, h, border_fraction)
    if xs.size == 0 or ys.size == 0:
        return projected, diff
    xx, yy = np.meshgrid(xs.astype(np.float64), ys.astype(np.float64))
    xr, yr = project_homography(params, xx, yy)
    sampled = right.interpolate(xr, yr, cval=0.0)
    block = np.ix_(ys, xs)
    projected[block] = sampled
    diff[block] = left.intensities[block] - sampled
    return projected, diff


def write_report(path: Path, dlt: ProjectiveTransform, refined: ProjectiveTransform | None = None, iterations: int | None = None) -> Path:
    lines = ["Projection parameters from point matching: "]
    lines += [f"{v:e}" for v in dlt.coeffs]
    if refined is not None:
        lines.append("Projection parameters after simplex optimization: ")
        lines += [f"{v:e}" for v in refined.coeffs]
        lines.append(f"Optimization took {int(iterations or 0)} iterations")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def _with_order(image: GrayImage, order: int) -> GrayImage:
    if image.order == order:
        return image
    return GrayImage(image.intensities, order=order)


class ProjectiveTransformEstimator:
    def __init__(
        self,
        config: EstimatorConfig | None = None,
        optimizer: Optimizer | None = None,
        inverter: MatrixInverter = lu_inverse,
    ) -> None:
        self.config = config if config is not None else EstimatorConfig()
        self.optimizer = optimizer if optimizer is not None else NelderMeadOptimizer()
        self.inverter = inverter

    def estimate(
        self,
        left: GrayImage,
        right: GrayImage,
        output_projected_image: bool = False,
        points_path: str | Path | None = None,
        out_dir: str | Path | None = None,
    ) -> HomographyEstimate:
        cfg = self.config
        out_dir = Path(out_dir) if out_dir is not None else Path(".")
        points_path = Path(points_path) if points_path is not None else Path(cfg.points_file)
        left = _with_order(left, cfg.interpolation_order)
        right = _with_order(right, cfg.interpolation_order)

        points = read_correspondences(points_path)
        dlt = estimate_dlt(points, inverter=self.inverter)
        logger.info("initial projective transform from %d correspondences: %s", points.shape[0], dlt.coeffs.tolist())

        report_path = out_dir / cfg.report_file
        write_report(report_path, dlt)

        xs, ys = central_region(left.width, left.height, cfg.border_fraction, cfg.sample_step)
        if xs.size == 0 or ys.size == 0:
            raise InsufficientDataError("image too small to compare intensities")

        def objective(p: np.ndarray) -> float:
            return intensity_mismatch(p, left, right, xs, ys)

        res = self.optimizer.minimize(objective, dlt.coeffs, cfg.initial_steps, cfg.max_iterations, cfg.tolerance)
        if not res.success:
            raise OptimizationError(
                f"could not determine projective transform after {res.iterations} iterations: {res.message}"
            )
        refined = ProjectiveTransform(res.x)
        write_report(report_path, dlt, refined, res.iterations)
        logger.info("refined projective transform in %d iterations (mismatch %g)", res.iterations, res.fun)
        logger.info("wrote %s", report_path)

        if output_projected_image:
            projected, diff = resample_right_into_left(refined.coeffs, left, right, cfg.border_fraction)
            p_img = write_image(out_dir / cfg.projected_image_file, projected)
            d_img = write_image(out_dir / cfg.diff_image_file, diff)
            logger.info("wrote %s and %s", p_img, d_img)

        return HomographyEstimate(dlt=dlt, refined=refined, iterations=res.iterations, mismatch=res.fun)
