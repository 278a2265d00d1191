"""
Command line replay of recorded rides.

Input is a recording file (``.json`` or ``.csv``, see
:func:`equigait.load_recording`).  JSON recordings look like:

{
  "sample_rate": 100.0,
  "horse": {"breed": "warmblood", "age": 9},
  "motion": [{"t": 0.0, "acceleration": [x, y, z], "rotation_rate": [x, y, z],
              "attitude": [pitch, roll, yaw], "quaternion": [w, x, y, z]}, ...],
  "location": [{"t": 1.0, "speed": 4.0, "distance": 4.0, "horizontal_accuracy": 5.0}, ...]
}
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import equigait


def _load_payload(input_path: Path) -> Dict[str, Any]:
    try:
        with input_path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {input_path}: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Input JSON must be an object")
    return payload


def _write_json(path: Path | None, payload: Dict[str, Any]) -> None:
    txt = json.dumps(payload, ensure_ascii=True, separators=(",", ":"))
    if path is None:
        print(txt)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(txt)


def _parse_formats(value: str) -> Sequence[str]:
    if not isinstance(value, str):
        raise ValueError("--formats must be a comma-separated string")
    parts = [p.strip().lower() for p in value.split(",") if p.strip()]
    if not parts:
        raise ValueError("--formats must not be empty")
    allowed = set(equigait.EXPORT_FORMATS)
    unknown = [p for p in parts if p not in allowed]
    if unknown:
        raise ValueError(f"Unknown format(s): {unknown}. Allowed: {sorted(allowed)}")
    # Preserve user order while removing duplicates.
    parts = list(dict.fromkeys(parts))
    return parts


def _build_config(args: argparse.Namespace) -> equigait.AnalysisConfig:
    if args.config is not None:
        data = _load_payload(args.config)
    else:
        data = {}
    overrides: Dict[str, Any] = {}
    if args.dressage:
        overrides["dressage"] = True
    if args.mount is not None:
        overrides["mount"] = args.mount
    if args.diagnostics:
        overrides["diagnostics"] = True
    if args.breed is not None:
        horse = dict(data.get("horse") or {})
        horse["breed"] = args.breed
        overrides["horse"] = horse
    data.update(overrides)
    return equigait.AnalysisConfig.from_dict(data)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Classify gaits in a recorded ride.")
    parser.add_argument("--input", required=True, type=Path, help="Recording file (.json or .csv).")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output path. For multi-format export, treated as output prefix.",
    )
    parser.add_argument("--config", type=Path, default=None, help="AnalysisConfig JSON file.")
    parser.add_argument("--breed", type=str, default=None, help="Override the horse breed.")
    parser.add_argument("--mount", type=str, default=None, help="Phone mount: chest|thigh")
    parser.add_argument("--dressage", action="store_true", help="Use the dressage classifier profile.")
    parser.add_argument("--diagnostics", action="store_true", help="Record classifier diagnostics.")
    parser.add_argument(
        "--formats",
        type=str,
        default="json",
        help="Comma-separated output formats: json,csv,xlsx",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr.")
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    formats = _parse_formats(args.formats)
    config = _build_config(args)
    recording = equigait.load_recording(args.input)
    if not recording.motion:
        raise ValueError(f"{args.input} contains no motion samples")
    if recording.sample_rate and abs(recording.sample_rate - config.sample_rate) > 1.0:
        config = dataclasses.replace(config, sample_rate=round(recording.sample_rate))

    result = equigait.run_recording(recording, config)

    if formats == ["json"]:
        _write_json(args.output, result.to_dict())
        return 0

    if args.output is None:
        raise ValueError("--output is required for multi-format export")

    paths = equigait.export_session(result, output_prefix=args.output, formats=formats)
    _write_json(None, {"written": paths})
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
