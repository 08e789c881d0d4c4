from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Sequence

import numpy as np

from stereotri.core.transforms import CardanBryantPose, compose, invert_4x4
from stereotri.errors import InvalidIntrinsicsError, ParseError, UnsupportedFormatError

logger = logging.getLogger(__name__)

INTRINSIC_NAMES = ("cx", "cy", "fx", "fy", "fs", "k1", "k2", "k3")

# Format B value counts: two intrinsics blocks + camera 0 -> camera 1 pose,
# optionally followed by a custom pose for the world frame.
TEXT_NUM_VALUES = 22
TEXT_NUM_VALUES_WITH_WORLD = 28

# Format A: token offsets inside a CAMERA record.
VIC3D_INTRINSICS_SLICE = slice(2, 10)
VIC3D_POSE_SLICE = slice(11, 17)
VIC3D_MIN_TOKENS = 18


class CalibrationFormat(str, Enum):
    VIC3D_XML = "vic3d_xml"
    TEXT = "text"
    JSON = "json"


_SUFFIX_TO_FORMAT = {
    ".xml": CalibrationFormat.VIC3D_XML,
    ".txt": CalibrationFormat.TEXT,
    ".json": CalibrationFormat.JSON,
}


@dataclass(frozen=True)
class CameraIntrinsics:
    cx: float
    cy: float
    fx: float
    fy: float
    fs: float = 0.0
    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "CameraIntrinsics":
        vals = [float(v) for v in values]
        if len(vals) != len(INTRINSIC_NAMES):
            raise ValueError(f"intrinsics need {len(INTRINSIC_NAMES)} values ({' '.join(INTRINSIC_NAMES)})")
        return cls(*vals)

    def as_tuple(self) -> tuple[float, ...]:
        return tuple(float(getattr(self, n)) for n in INTRINSIC_NAMES)


def _frozen_transform(T: np.ndarray | None) -> np.ndarray:
    if T is None:
        T = np.eye(4, dtype=np.float64)
    T = np.array(T, dtype=np.float64, copy=True)
    if T.shape != (4, 4):
        raise ValueError(f"transform must be 4x4, got {T.shape}")
    T.setflags(write=False)
    return T


@dataclass(frozen=True, eq=False)
class Calibration:
    """
    Stereo rig calibration.

    Conventions:
    - `cal_extrinsics` maps camera 0 coordinates to camera 1 coordinates,
      X_1 = R X_0 + t (upper 3x4 block).
    - `trans_extrinsics` maps camera 0 coordinates to world coordinates
      (identity when the file does not define a world frame).

    Instances are immutable: the transforms are stored as read-only copies.
    """

    intrinsics: tuple[CameraIntrinsics, CameraIntrinsics]
    cal_extrinsics: np.ndarray
    trans_extrinsics: np.ndarray | None = None
    source_format: CalibrationFormat | None = None
    source_path: str | None = None

    def __post_init__(self) -> None:
        if len(self.intrinsics) != 2:
            raise ValueError("a stereo calibration needs exactly 2 cameras")
        object.__setattr__(self, "intrinsics", tuple(self.intrinsics))
        object.__setattr__(self, "cal_extrinsics", _frozen_transform(self.cal_extrinsics))
        object.__setattr__(self, "trans_extrinsics", _frozen_transform(self.trans_extrinsics))
        validate_intrinsics(self.intrinsics)

    def camera(self, camera_id: int) -> CameraIntrinsics:
        if camera_id not in (0, 1):
            raise ValueError(f"camera_id must be 0 or 1, got {camera_id}")
        return self.intrinsics[camera_id]


def validate_intrinsics(intrinsics: Iterable[CameraIntrinsics]) -> None:
    for i, intr in enumerate(intrinsics):
        if not intr.cx > 0.0:
            raise InvalidIntrinsicsError(f"invalid cx for camera {i}: {intr.cx}")
        if not intr.cy > 0.0:
            raise InvalidIntrinsicsError(f"invalid cy for camera {i}: {intr.cy}")


def tokenize_line(line: str, delimiters: str = " \t<>") -> list[str]:
    pattern = "[" + re.escape(delimiters) + "\r\n]+"
    return [tok for tok in re.split(pattern, line) if tok]


def _to_float(token: str, where: str) -> float:
    try:
        return float(token)
    except ValueError as e:
        raise ParseError(f"{where}: expected a number, got {token!r}") from e


def parse_vic3d_lines(lines: Iterable[str]) -> Calibration:
    """
    Parse a VIC-3D style calibration (tag-delimited tokens, one CAMERA record per line).

    Each camera pose is the camera's Cardan-Bryant orientation in the
    calibration frame. Camera 0's inverse maps camera 0 to world, and
    T1 @ inv(T0) maps camera 0 to camera 1.
    """
    intrinsics: list[CameraIntrinsics] = []
    poses: list[np.ndarray] = []
    for lineno, line in enumerate(lines, start=1):
        tokens = tokenize_line(line)
        if not tokens or tokens[0] != "CAMERA":
            continue
        if len(intrinsics) >= 2:
            raise ParseError(f"line {lineno}: more than 2 CAMERA records")
        if len(tokens) < VIC3D_MIN_TOKENS:
            raise ParseError(f"line {lineno}: CAMERA record has {len(tokens)} tokens, expected at least {VIC3D_MIN_TOKENS}")
        where = f"line {lineno}"
        intr_vals = [_to_float(t, where) for t in tokens[VIC3D_INTRINSICS_SLICE]]
        pose_vals = [_to_float(t, where) for t in tokens[VIC3D_POSE_SLICE]]
        cam = len(intrinsics)
        logger.debug("camera %d orientation %s", cam, pose_vals)
        intrinsics.append(CameraIntrinsics.from_values(intr_vals))
        poses.append(CardanBryantPose.from_values(pose_vals).to_transform())

    if len(intrinsics) != 2:
        raise ParseError(f"expected 2 CAMERA records, found {len(intrinsics)}")

    T0_inv = invert_4x4(poses[0])
    return Calibration(
        intrinsics=(intrinsics[0], intrinsics[1]),
        cal_extrinsics=compose(poses[1], T0_inv),
        trans_extrinsics=T0_inv,
        source_format=CalibrationFormat.VIC3D_XML,
    )


def parse_text_lines(lines: Iterable[str]) -> Calibration:
    """
    Parse the generic text calibration: one value per line, '#' starts a comment.

    Order: cx cy fx fy fs k1 k2 k3 for camera 0 then camera 1, the camera 0 ->
    camera 1 pose (alpha beta gamma tx ty tz) and, optionally, a pose whose
    inverse maps camera 0 to world.
    """
    values: list[float] = []
    for lineno, line in enumerate(lines, start=1):
        tokens = tokenize_line(line)
        if not tokens or tokens[0].startswith("#"):
            continue
        if len(tokens) > 1 and not tokens[1].startswith("#"):
            raise ParseError(f"line {lineno}: expected one value per line, found {len(tokens)} tokens")
        if len(values) >= TEXT_NUM_VALUES_WITH_WORLD:
            raise ParseError(f"line {lineno}: more than {TEXT_NUM_VALUES_WITH_WORLD} values")
        values.append(_to_float(tokens[0], f"line {lineno}"))

    if len(values) not in (TEXT_NUM_VALUES, TEXT_NUM_VALUES_WITH_WORLD):
        raise ParseError(
            f"expected {TEXT_NUM_VALUES} or {TEXT_NUM_VALUES_WITH_WORLD} values, found {len(values)}"
        )

    cal = CardanBryantPose.from_values(values[16:22]).to_transform()
    world = None
    if len(values) == TEXT_NUM_VALUES_WITH_WORLD:
        logger.debug("loading custom transform from camera 0 to world coordinates")
        world = invert_4x4(CardanBryantPose.from_values(values[22:28]).to_transform())

    return Calibration(
        intrinsics=(CameraIntrinsics.from_values(values[0:8]), CameraIntrinsics.from_values(values[8:16])),
        cal_extrinsics=cal,
        trans_extrinsics=world,
        source_format=CalibrationFormat.TEXT,
    )


def detect_format(path: str | Path) -> CalibrationFormat:
    suffix = Path(path).suffix.lower()
    fmt = _SUFFIX_TO_FORMAT.get(suffix)
    if fmt is None:
        raise UnsupportedFormatError(f"unrecognized calibration file format: {path}")
    return fmt


def _parse_json_lines(lines: Iterable[str]) -> Calibration:
    from stereotri.api.model_io import parse_calibration_json

    return parse_calibration_json("".join(lines))


PARSERS: dict[CalibrationFormat, Callable[[Iterable[str]], Calibration]] = {
    CalibrationFormat.VIC3D_XML: parse_vic3d_lines,
    CalibrationFormat.TEXT: parse_text_lines,
    CalibrationFormat.JSON: _parse_json_lines,
}


def load_calibration(path: str | Path) -> Calibration:
    p = Path(path)
    fmt = detect_format(p)
    logger.debug("parsing calibration parameters from %s (%s)", p, fmt.value)
    try:
        lines = p.read_text(encoding="utf-8").splitlines(keepends=True)
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"calibration file does not exist or is corrupt: {p}") from e

    try:
        calib = PARSERS[fmt](lines)
    except ParseError as e:
        raise ParseError(f"{p}: {e}") from e
    calib = Calibration(
        intrinsics=calib.intrinsics,
        cal_extrinsics=calib.cal_extrinsics,
        trans_extrinsics=calib.trans_extrinsics,
        source_format=fmt,
        source_path=str(p),
    )
    _log_calibration(calib)
    return calib


def _log_calibration(calib: Calibration) -> None:
    if not logger.isEnabledFor(logging.DEBUG):
        return
    for i, intr in enumerate(calib.intrinsics):
        params = " ".join(f"{n}={v:g}" for n, v in zip(INTRINSIC_NAMES, intr.as_tuple()))
        logger.debug("camera %d intrinsics: %s", i, params)
    logger.debug("camera 0 -> camera 1 transform:\n%s", np.array2string(calib.cal_extrinsics, precision=6))
    logger.debug("camera 0 -> world transform:\n%s", np.array2string(calib.trans_extrinsics, precision=6))
