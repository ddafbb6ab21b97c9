from __future__ import annotations

import hashlib
import json
from typing import Any

from gridcraft.sim.overlay import CellOverlayStore


def session_hash(payload: dict[str, Any]) -> str:
    hash_payload = {key: value for key, value in payload.items() if key != "session_hash"}
    encoded = json.dumps(hash_payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def overlay_hash(overlay: CellOverlayStore) -> str:
    encoded = json.dumps(overlay.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()
