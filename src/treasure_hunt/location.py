"""GPS fixes for geotagging markers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidRequest, LocationPermissionDenied


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


UNKNOWN_LOCATION = Coordinates(0.0, 0.0)


class LocationProvider(ABC):
    @abstractmethod
    def current(self) -> Coordinates:
        """Return the current fix or raise LocationPermissionDenied."""


class FixedLocation(LocationProvider):
    """
    Last fix reported by the operator's device.

    The browser sends its coordinates with every frame; ``update`` records
    them so the workflow reads the position at capture time.
    """

    def __init__(self, latitude: Optional[float] = None, longitude: Optional[float] = None):
        self._fix: Optional[Coordinates] = None
        if latitude is not None and longitude is not None:
            self.update(latitude, longitude)

    def update(self, latitude: float, longitude: float) -> None:
        try:
            lat, lon = float(latitude), float(longitude)
        except (TypeError, ValueError):
            lat = lon = float('nan')
        if not -90 <= lat <= 90 or not -180 <= lon <= 180:
            raise InvalidRequest(
                f"Invalid coordinates: {latitude}, {longitude}",
                payload={'latitude': latitude, 'longitude': longitude},
            )
        self._fix = Coordinates(lat, lon)

    def current(self) -> Coordinates:
        if self._fix is None:
            raise LocationPermissionDenied("Location not available; allow GPS access on the device")
        return self._fix


class DeniedLocation(LocationProvider):
    """The operator refused location access."""

    def current(self) -> Coordinates:
        raise LocationPermissionDenied("Location permission denied")
