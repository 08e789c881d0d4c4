from __future__ import annotations


class StereoTriError(Exception):
    """Base class for every error raised by stereotri."""


class ParseError(StereoTriError, ValueError):
    """Malformed or unreadable calibration / correspondence file."""


class UnsupportedFormatError(StereoTriError, ValueError):
    pass


class InvalidIntrinsicsError(StereoTriError, ValueError):
    pass


class SingularMatrixError(StereoTriError, ArithmeticError):
    pass


class InsufficientDataError(StereoTriError, ValueError):
    pass


class NotInitializedError(StereoTriError, RuntimeError):
    pass


class OptimizationError(StereoTriError, RuntimeError):
    pass


class ProjectionDepthError(StereoTriError, ArithmeticError):
    """Homogeneous depth of a forward projection is zero or inconsistent."""
