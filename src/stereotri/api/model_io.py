from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from stereotri.calibration import INTRINSIC_NAMES, Calibration, CalibrationFormat, CameraIntrinsics
from stereotri.errors import ParseError

SCHEMA_VERSION = "stereotri.calibration.v0"


def _to_float_matrix(x: Any, shape: tuple[int, ...], name: str) -> np.ndarray:
    try:
        arr = np.asarray(x, dtype=np.float64).reshape(shape)
    except (TypeError, ValueError) as e:
        raise ParseError(f"{name} must be a {shape} numeric array") from e
    if not np.all(np.isfinite(arr)):
        raise ParseError(f"{name} has non-finite values")
    return arr


def calibration_to_dict(calib: Calibration) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "cameras": [dict(zip(INTRINSIC_NAMES, intr.as_tuple())) for intr in calib.intrinsics],
        "cal_extrinsics": np.asarray(calib.cal_extrinsics, dtype=np.float64).tolist(),
        "trans_extrinsics": np.asarray(calib.trans_extrinsics, dtype=np.float64).tolist(),
    }


def save_calibration(path: Path, calib: Calibration) -> Path:
    """
    Save a resolved calibration (intrinsics + both 4x4 transforms) as JSON.

    The file can be loaded back through `load_calibration` without going
    through the legacy parsers again.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(calibration_to_dict(calib), indent=2, sort_keys=True), encoding="utf-8")
    return path


def parse_calibration_json(text: str) -> Calibration:
    try:
        meta = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid JSON: {e}") from e
    if not isinstance(meta, dict) or str(meta.get("schema_version")) != SCHEMA_VERSION:
        raise ParseError("unsupported calibration schema")

    cams = meta.get("cameras")
    if not isinstance(cams, list) or len(cams) != 2:
        raise ParseError("cameras must list exactly 2 cameras")
    intrinsics = []
    for i, cam in enumerate(cams):
        try:
            vals = [cam[n] for n in INTRINSIC_NAMES]
        except (KeyError, TypeError) as e:
            raise ParseError(f"camera {i} is missing intrinsics: {e}") from e
        intrinsics.append(CameraIntrinsics.from_values(_to_float_matrix(vals, (8,), f"camera {i}")))

    return Calibration(
        intrinsics=(intrinsics[0], intrinsics[1]),
        cal_extrinsics=_to_float_matrix(meta.get("cal_extrinsics"), (4, 4), "cal_extrinsics"),
        trans_extrinsics=_to_float_matrix(meta.get("trans_extrinsics", np.eye(4).tolist()), (4, 4), "trans_extrinsics"),
        source_format=CalibrationFormat.JSON,
    )


def load_calibration_json(path: Path) -> Calibration:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(f"calibration file does not exist or is corrupt: {path}") from e
    return parse_calibration_json(text)
