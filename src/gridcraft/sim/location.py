from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

GEO_ERROR_PERMISSION_DENIED = "permission-denied"
GEO_ERROR_POSITION_UNAVAILABLE = "position-unavailable"
GEO_ERROR_TIMEOUT = "timeout"
GEO_ERROR_OTHER = "other"
GEO_ERROR_KINDS = (
    GEO_ERROR_PERMISSION_DENIED,
    GEO_ERROR_POSITION_UNAVAILABLE,
    GEO_ERROR_TIMEOUT,
    GEO_ERROR_OTHER,
)
TRANSIENT_GEO_ERRORS = {GEO_ERROR_POSITION_UNAVAILABLE, GEO_ERROR_TIMEOUT}

DEFAULT_GEO_OPTIONS: dict[str, Any] = {"enable_high_accuracy": True, "timeout_ms": 10_000, "maximum_age_ms": 0}

PositionCallback = Callable[[float, float], None]
ErrorCallback = Callable[[str], None]


def classify_geo_error(kind: Any) -> str:
    return kind if kind in GEO_ERROR_KINDS else GEO_ERROR_OTHER


class GeolocationSource:
    """Device-location collaborator.

    Callbacks run on the caller's thread. ``cancel`` must accept handles that
    were already cancelled.
    """

    def request_once(self, on_success: PositionCallback, on_error: ErrorCallback, options: dict[str, Any] | None = None) -> None:
        raise NotImplementedError

    def watch(self, on_update: PositionCallback, on_error: ErrorCallback, options: dict[str, Any] | None = None) -> Any:
        raise NotImplementedError

    def cancel(self, handle: Any) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class GeoSample:
    """One recorded reading: a fix, or an error kind."""

    lat: float | None = None
    lng: float | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.error is None and (self.lat is None or self.lng is None):
            raise ValueError("geo sample needs lat/lng or an error kind")
        if self.error is not None and self.error not in GEO_ERROR_KINDS:
            raise ValueError(f"unsupported geo error kind: {self.error}")

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error}
        return {"lat": self.lat, "lng": self.lng}


@dataclass
class _Watch:
    on_update: PositionCallback
    on_error: ErrorCallback


class ScriptedGeolocation(GeolocationSource):
    """Replays recorded samples; the UI loop calls ``pump`` to deliver them."""

    def __init__(self, samples: list[GeoSample] | tuple[GeoSample, ...] = (), *, permission_denied: bool = False) -> None:
        self._samples = list(samples)
        self._cursor = 0
        self._watches: dict[int, _Watch] = {}
        self._next_handle = 1
        self.permission_denied = permission_denied

    @property
    def active_watch_count(self) -> int:
        return len(self._watches)

    @property
    def remaining(self) -> int:
        return len(self._samples) - self._cursor

    def request_once(self, on_success: PositionCallback, on_error: ErrorCallback, options: dict[str, Any] | None = None) -> None:
        if self.permission_denied:
            on_error(GEO_ERROR_PERMISSION_DENIED)
            return
        sample = self._next_sample()
        if sample is None:
            on_error(GEO_ERROR_POSITION_UNAVAILABLE)
            return
        self._deliver(sample, on_success, on_error)

    def watch(self, on_update: PositionCallback, on_error: ErrorCallback, options: dict[str, Any] | None = None) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._watches[handle] = _Watch(on_update=on_update, on_error=on_error)
        return handle

    def cancel(self, handle: Any) -> None:
        self._watches.pop(handle, None)

    def pump(self, count: int = 1) -> int:
        """Deliver up to ``count`` samples to active watches; returns how many were sent."""
        delivered = 0
        while delivered < count and self._watches:
            if self.permission_denied:
                sample: GeoSample | None = GeoSample(error=GEO_ERROR_PERMISSION_DENIED)
            else:
                sample = self._next_sample()
            if sample is None:
                break
            for handle in sorted(self._watches):
                watch = self._watches.get(handle)
                if watch is not None:
                    self._deliver(sample, watch.on_update, watch.on_error)
            delivered += 1
        return delivered

    def _next_sample(self) -> GeoSample | None:
        if self._cursor >= len(self._samples):
            return None
        sample = self._samples[self._cursor]
        self._cursor += 1
        return sample

    @staticmethod
    def _deliver(sample: GeoSample, on_position: PositionCallback, on_error: ErrorCallback) -> None:
        if sample.error is not None:
            on_error(sample.error)
            return
        on_position(float(sample.lat), float(sample.lng))
