from __future__ import annotations

import argparse
import logging
from pathlib import Path

import numpy as np

from stereotri.api.model_io import save_calibration
from stereotri.api.triangulation import Triangulation
from stereotri.config import default_config, load_config
from stereotri.core.image_io import read_image
from stereotri.homography import read_correspondences


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="stereotri")
    parser.add_argument("--config", type=Path, default=None, help="JSON config (stereotri.config.v0).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    tri = sub.add_parser("triangulate", help="Triangulate matched sensor coordinates (x0 y0 x1 y1 per line).")
    tri.add_argument("calibration", type=Path, help="Calibration file (.xml, .txt or .json).")
    tri.add_argument("points", type=Path)
    tri.add_argument("--out", type=Path, default=Path("triangulated.csv"))
    tri.add_argument("--correct-distortion", action="store_true", help="Apply radial lens distortion correction first.")

    proj = sub.add_parser("project", help="Project a camera 0 point into camera 1 sensor coordinates.")
    proj.add_argument("calibration", type=Path)
    proj.add_argument("xyz", type=float, nargs=3, metavar=("X", "Y", "Z"))

    est = sub.add_parser("estimate-homography", help="Estimate the left -> right projective transform.")
    est.add_argument("left", type=Path)
    est.add_argument("right", type=Path)
    est.add_argument("--points", type=Path, default=None, help="Correspondence file (default from config).")
    est.add_argument("--out-dir", type=Path, default=Path("."))
    est.add_argument("--diagnostic-images", action="store_true", help="Write the resampled and difference images.")

    exp = sub.add_parser("export-calibration", help="Convert a calibration file to stereotri JSON.")
    exp.add_argument("calibration", type=Path)
    exp.add_argument("out", type=Path)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = load_config(args.config) if args.config is not None else default_config()

    if args.cmd == "triangulate":
        tri_ctx = Triangulation.from_file(args.calibration, config=config)
        pts = read_correspondences(args.points, min_points=1)
        xyz_cam, xyz_world = tri_ctx.triangulate_points(
            pts[:, 0:2], pts[:, 2:4], correct_lens_distortion=args.correct_distortion
        )
        args.out.parent.mkdir(parents=True, exist_ok=True)
        np.savetxt(
            args.out,
            np.hstack([xyz_cam, xyz_world]),
            delimiter=",",
            header="xc,yc,zc,xw,yw,zw",
            comments="",
        )
        print(f"Wrote {args.out}")
        return 0

    if args.cmd == "project":
        tri_ctx = Triangulation.from_file(args.calibration, config=config)
        xs, ys = tri_ctx.project_camera_0_to_sensor_1(*args.xyz)
        print(f"{xs:.6f} {ys:.6f}")
        return 0

    if args.cmd == "estimate-homography":
        tri_ctx = Triangulation(config=config)
        result = tri_ctx.estimate_projective_transform(
            read_image(args.left, order=config.estimator.interpolation_order),
            read_image(args.right, order=config.estimator.interpolation_order),
            output_projected_image=args.diagnostic_images,
            points_path=args.points,
            out_dir=args.out_dir,
        )
        print(" ".join(f"{v:e}" for v in result.refined.coeffs))
        print(f"Wrote {args.out_dir / config.estimator.report_file}")
        return 0

    if args.cmd == "export-calibration":
        tri_ctx = Triangulation.from_file(args.calibration, config=config)
        save_calibration(args.out, tri_ctx.calibration)
        print(f"Wrote {args.out}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
