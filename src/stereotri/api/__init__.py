from stereotri.api.model_io import load_calibration_json, save_calibration
from stereotri.api.triangulation import TriangulatedPoint, Triangulation

__all__ = [
    "Triangulation",
    "TriangulatedPoint",
    "load_calibration_json",
    "save_calibration",
]
