from __future__ import annotations


def test_public_api_exports() -> None:
    import stereotri as st

    assert hasattr(st, "Triangulation")
    assert hasattr(st, "load_calibration")
    assert hasattr(st, "save_calibration")
    assert hasattr(st, "ProjectiveTransformEstimator")
    assert issubclass(st.errors.ParseError, ValueError)
    assert issubclass(st.errors.SingularMatrixError, st.errors.StereoTriError)
