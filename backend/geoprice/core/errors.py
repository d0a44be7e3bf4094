from typing import List, Optional


class GeoPriceError(Exception):
    """Base class for errors raised by the prediction pipeline."""


class InvalidLocationError(GeoPriceError):
    """Coordinates are missing, out of range, or an address could not be geocoded."""


class NoCoverageError(GeoPriceError):
    """The requested point lies outside the extent of the region dataset."""

    def __init__(self, lat: float, lon: float, bounds=None):
        self.lat = lat
        self.lon = lon
        self.bounds = bounds
        super().__init__(f"No coverage for ({lat}, {lon}): outside region dataset extent")


class FeatureValidationError(GeoPriceError):
    """The assembled feature vector is incomplete or holds unusable values."""

    def __init__(self, message: str, missing: Optional[List[str]] = None,
                 unknown: Optional[List[str]] = None):
        self.missing = missing or []
        self.unknown = unknown or []
        super().__init__(message)


class RegionDataError(GeoPriceError):
    """The polygon dataset failed validation on load."""


class ModelSchemaError(GeoPriceError):
    """The model artifact does not match the declared feature schema."""
