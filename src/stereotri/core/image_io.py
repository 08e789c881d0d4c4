from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from pathlib import Path

import numpy as np
from PIL import Image
from scipy import ndimage


@dataclass(frozen=True)
class GrayImage:
    """
    Grayscale intensity buffer indexed as (x, y) = (column, row).

    `interpolate` samples between pixels with a spline of `order` (cubic by
    default); the spline coefficients are computed once per image.
    """

    intensities: np.ndarray  # (H,W) float64
    order: int = 3

    def __post_init__(self) -> None:
        arr = np.array(self.intensities, dtype=np.float64, copy=True)
        if arr.ndim != 2:
            raise ValueError(f"intensities must be 2D (H,W), got shape {arr.shape}")
        arr.setflags(write=False)
        object.__setattr__(self, "intensities", arr)

    @property
    def width(self) -> int:
        return int(self.intensities.shape[1])

    @property
    def height(self) -> int:
        return int(self.intensities.shape[0])

    def __call__(self, x: int, y: int) -> float:
        return float(self.intensities[int(y), int(x)])

    @cached_property
    def _coeffs(self) -> np.ndarray:
        if self.order <= 1:
            return self.intensities
        return ndimage.spline_filter(self.intensities, order=self.order, output=np.float64, mode="nearest")

    def interpolate(self, x, y, cval: float = np.nan):
        """
        Sub-pixel intensity at (x, y); scalars or arrays of the same shape.

        Samples outside [0, W-1] x [0, H-1] get `cval`.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        coords = np.stack([y.reshape(-1), x.reshape(-1)], axis=0)
        vals = ndimage.map_coordinates(
            self._coeffs,
            coords,
            order=self.order,
            mode="nearest",
            prefilter=False,
        )
        inside = (coords[1] >= 0.0) & (coords[1] <= self.width - 1) & (coords[0] >= 0.0) & (coords[0] <= self.height - 1)
        vals = np.where(inside, vals, cval)
        if x.ndim == 0:
            return float(vals[0])
        return vals.reshape(x.shape)


def read_image(path: str | Path, order: int = 3) -> GrayImage:
    """Load an image file (any format Pillow reads, TIFF included) as 8-bit grayscale."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Missing image {p}")
    with Image.open(p) as im:
        arr = np.asarray(im.convert("L"), dtype=np.float64)
    return GrayImage(arr, order=order)


def write_image(path: str | Path, image: GrayImage | np.ndarray) -> Path:
    """Write intensities as an 8-bit grayscale image (values clipped to [0, 255])."""
    p = Path(path)
    arr = image.intensities if isinstance(image, GrayImage) else np.asarray(image, dtype=np.float64)
    arr = np.nan_to_num(arr, nan=0.0)
    u8 = np.clip(np.rint(arr), 0.0, 255.0).astype(np.uint8)
    p.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(u8).save(p)
    return p
