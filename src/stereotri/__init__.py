from stereotri import errors
from stereotri.api import Triangulation, TriangulatedPoint, load_calibration_json, save_calibration
from stereotri.calibration import Calibration, CameraIntrinsics, load_calibration
from stereotri.homography import ProjectiveTransform, ProjectiveTransformEstimator

__all__ = [
    "errors",
    "Triangulation",
    "TriangulatedPoint",
    "Calibration",
    "CameraIntrinsics",
    "load_calibration",
    "load_calibration_json",
    "save_calibration",
    "ProjectiveTransform",
    "ProjectiveTransformEstimator",
]
