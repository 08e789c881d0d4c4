from __future__ import annotations

import json

import numpy as np
import pytest
from numpy.testing import assert_allclose

from stereotri.api.model_io import calibration_to_dict, load_calibration_json, parse_calibration_json, save_calibration
from stereotri.calibration import CalibrationFormat, load_calibration
from stereotri.core.transforms import pose_to_transform
from stereotri.errors import InvalidIntrinsicsError, ParseError


def test_save_then_load_through_dispatch(tmp_path, stereo_calibration):
    world = pose_to_transform(1.0, 2.0, 3.0, 4.0, 5.0, 6.0)
    calib = type(stereo_calibration)(
        intrinsics=stereo_calibration.intrinsics,
        cal_extrinsics=stereo_calibration.cal_extrinsics,
        trans_extrinsics=world,
    )
    path = save_calibration(tmp_path / "out" / "cal.json", calib)

    loaded = load_calibration(path)
    assert loaded.source_format is CalibrationFormat.JSON
    assert loaded.source_path == str(path)
    assert loaded.intrinsics == calib.intrinsics
    assert_allclose(loaded.cal_extrinsics, calib.cal_extrinsics)
    assert_allclose(loaded.trans_extrinsics, world)


def test_missing_trans_extrinsics_defaults_to_identity(stereo_calibration):
    data = calibration_to_dict(stereo_calibration)
    del data["trans_extrinsics"]
    calib = parse_calibration_json(json.dumps(data))
    assert_allclose(calib.trans_extrinsics, np.eye(4))


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d.update(schema_version="other"),
        lambda d: d.update(cameras=d["cameras"][:1]),
        lambda d: d["cameras"][0].pop("fx"),
        lambda d: d.update(cal_extrinsics=[[1.0, 0.0], [0.0, 1.0]]),
        lambda d: d["cal_extrinsics"][0].__setitem__(0, "x"),
    ],
)
def test_bad_documents_are_parse_errors(stereo_calibration, mutate):
    data = calibration_to_dict(stereo_calibration)
    mutate(data)
    with pytest.raises(ParseError):
        parse_calibration_json(json.dumps(data))


def test_invalid_json_and_missing_file(tmp_path):
    with pytest.raises(ParseError):
        parse_calibration_json("{not json")
    with pytest.raises(ParseError):
        load_calibration_json(tmp_path / "missing.json")


def test_invalid_principal_point_in_json(stereo_calibration):
    data = calibration_to_dict(stereo_calibration)
    data["cameras"][1]["cy"] = 0.0
    with pytest.raises(InvalidIntrinsicsError):
        parse_calibration_json(json.dumps(data))
