from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from gridcraft.content.schema import validate_track_payload
from gridcraft.sim.location import GeoSample

TRACK_SCHEMA_VERSION = 1
DEFAULT_TRACK_PATH = "content/tracks/campus_walk.json"


def load_track_json(path: str | Path) -> tuple[GeoSample, ...]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return track_from_payload(payload)


def track_from_payload(payload: dict[str, Any]) -> tuple[GeoSample, ...]:
    validate_track_payload(payload)
    samples: list[GeoSample] = []
    for sample in payload["samples"]:
        if "error" in sample:
            samples.append(GeoSample(error=sample["error"]))
        else:
            samples.append(GeoSample(lat=float(sample["lat"]), lng=float(sample["lng"])))
    return tuple(samples)
