"""
HDR Merge - command line entry point

Loads a bracket set, aligns it (falling back to the unaligned frames when
alignment fails), fuses the exposures and tone maps the result to an 8-bit
image.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from api.services.alignment import ALIGN_METHODS, align_exposures
from api.services.engine import EngineConfig, process
from api.services.errors import AlignmentFailed, HDRError
from api.services.fusion import WeightingPolicy
from api.services.image_utils import decode_image, encode_image
from api.services.tonemapping import DEFAULT_REGISTRY

logger = logging.getLogger("hdr_merge")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Merge bracketed exposures into a tone-mapped image")
    parser.add_argument("inputs", nargs="*", help="Exposure images (at least two)")
    parser.add_argument("--low", help="Path to low exposure image")
    parser.add_argument("--mid", help="Path to mid exposure image")
    parser.add_argument("--high", help="Path to high exposure image")
    parser.add_argument("--output", default="hdr_output.jpg", help="Path for output image")
    parser.add_argument("--tonemapper", default="reinhard", help="Tone mapping operator (%s)" % ", ".join(DEFAULT_REGISTRY.names()))
    parser.add_argument("--gamma", type=float, default=1.0, help="Gamma correction value")
    parser.add_argument("--intensity", type=float, default=1.0, help="Intensity adjustment")
    parser.add_argument("--light", type=float, default=0.0, help="Light adaptation (reinhard05 only)")
    parser.add_argument("--ld-max", type=float, default=100.0, help="Display max luminance (drago, logarithmic)")
    parser.add_argument("--bias", type=float, default=0.85, help="Bias (drago only)")
    parser.add_argument("--saturation", type=float, default=1.0, help="Colour saturation after tone mapping")
    parser.add_argument("--contrast", type=float, default=1.0, help="Contrast (reinhard05 only)")
    parser.add_argument("--align", choices=ALIGN_METHODS, default="mtb", help="Alignment method")
    parser.add_argument("--weighting", choices=[p.value for p in WeightingPolicy], default=WeightingPolicy.AVERAGE.value)
    parser.add_argument("--workers", type=int, default=1, help="Threads used to render row tiles")
    parser.add_argument("--exactly-three", action="store_true", help="Require exactly three exposures")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def collect_inputs(args: argparse.Namespace) -> List[Path]:
    paths = [Path(p) for p in (args.low, args.mid, args.high) if p]
    paths.extend(Path(p) for p in args.inputs)
    return paths


def tone_params(args: argparse.Namespace) -> Dict[str, float]:
    return {
        "gamma": args.gamma,
        "intensity": args.intensity,
        "light": args.light,
        "ldMax": args.ld_max,
        "bias": args.bias,
        "saturation": args.saturation,
        "contrast": args.contrast,
    }


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    paths = collect_inputs(args)
    config = EngineConfig(
        weighting=WeightingPolicy(args.weighting),
        required_count=3 if args.exactly_three else None,
        workers=max(1, args.workers),
    )
    params = tone_params(args)

    try:
        # fail on a bad operator before decoding anything
        config.registry.create(args.tonemapper, params)
        exposures = [decode_image(p) for p in paths]
        # a single frame goes straight to validation, which reports the count
        if len(exposures) >= 2:
            try:
                exposures = align_exposures(exposures, method=args.align)
            except AlignmentFailed as e:
                logger.warning("Image alignment failed: %s", e)
                logger.warning("Proceeding with unaligned images...")
        display = process(exposures, args.tonemapper, params, config)
        out_path = encode_image(display, Path(args.output))
    except HDRError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"HDR image successfully saved to {out_path}")
    print("Processing parameters:")
    print(f"- Tone mapper: {args.tonemapper}")
    print(f"- Gamma: {args.gamma:.2f}")
    print(f"- Intensity: {args.intensity:.2f}")
    if args.tonemapper.lower() == "reinhard05":
        print(f"- Light adaptation: {args.light:.2f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
