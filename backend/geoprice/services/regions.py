"""
Region polygon dataset and the point-to-region lookup.

The dataset is loaded once, validated against the declared attribute schema,
and indexed with an STR tree. After construction a RegionIndex is never
modified, so it can be shared by concurrent requests.
"""

import os
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence, Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
import polars as pl
import shapely

from geoprice.core.config import REGION_FIELDS, SETTINGS
from geoprice.core.errors import InvalidLocationError, NoCoverageError, RegionDataError
from geoprice.utils.geo import haversine, valid_coordinates

WGS84 = 'EPSG:4326'


@dataclass(frozen=True)
class RegionMatch:
    """Result of a region lookup."""
    index: int
    region_id: str
    attributes: Dict[str, float]
    match: str  # 'contains' or 'nearest'
    distance_km: float

    def to_dict(self) -> Dict:
        return asdict(self)


def _readonly(values: np.ndarray) -> np.ndarray:
    values = np.array(values)
    values.flags.writeable = False
    return values


def coerce_attributes(frame: pd.DataFrame, fields: Sequence[str]) -> pl.DataFrame:
    """Coerce the attribute columns to Float64, rejecting incomplete rows.

    Every region must carry every field as a finite number.
    """
    missing_cols = [f for f in fields if f not in frame.columns]
    if missing_cols:
        raise RegionDataError(f"Region dataset is missing attribute columns: {missing_cols}")

    series = []
    bad = {}
    for name in fields:
        values = pd.to_numeric(frame[name], errors='coerce').to_numpy(dtype=float)
        invalid = int((~np.isfinite(values)).sum())
        if invalid:
            bad[name] = invalid
        series.append(pl.Series(name, values, dtype=pl.Float64, nan_to_null=True))

    if bad:
        details = ", ".join(f"{name}: {count} rows" for name, count in bad.items())
        raise RegionDataError(f"Region attributes must be numeric and complete ({details})")

    return pl.DataFrame(series)


class RegionIndex:
    """Immutable polygon index with attached numeric attributes."""

    def __init__(self, geometries: np.ndarray, attributes: pl.DataFrame,
                 region_ids: Sequence[str]):
        if len(geometries) == 0:
            raise RegionDataError("Region dataset is empty")
        if not (len(geometries) == attributes.height == len(region_ids)):
            raise RegionDataError("Geometries, attributes and ids differ in length")

        self.geometries = _readonly(geometries)
        self.attributes = attributes
        self.fields: List[str] = list(attributes.columns)
        self.region_ids: Tuple[str, ...] = tuple(region_ids)

        self._tree = shapely.STRtree(self.geometries)

        centroids = shapely.centroid(self.geometries)
        self.centroid_lon = _readonly(shapely.get_x(centroids))
        self.centroid_lat = _readonly(shapely.get_y(centroids))

        minx, miny, maxx, maxy = shapely.total_bounds(self.geometries)
        self.bounds = (float(minx), float(miny), float(maxx), float(maxy))

    def __len__(self) -> int:
        return len(self.geometries)

    @classmethod
    def from_frame(cls, gdf: gpd.GeoDataFrame, fields: Optional[Sequence[str]] = None,
                   id_field: Optional[str] = None) -> 'RegionIndex':
        """Validate a GeoDataFrame and build the index from it."""
        fields = list(fields or REGION_FIELDS)
        id_field = id_field or SETTINGS['region_id_field']

        if gdf.empty:
            raise RegionDataError("Region dataset is empty")

        if gdf.crs is None:
            gdf = gdf.set_crs(WGS84)
        elif not gdf.crs.equals(WGS84):
            gdf = gdf.to_crs(WGS84)

        empty = gdf.geometry.isna() | gdf.geometry.is_empty
        if empty.any():
            raise RegionDataError(f"Region dataset has {int(empty.sum())} rows without geometry")

        attributes = coerce_attributes(gdf, fields)

        if id_field in gdf.columns:
            region_ids = gdf[id_field].astype(str).tolist()
        else:
            region_ids = [str(i) for i in range(len(gdf))]

        return cls(gdf.geometry.to_numpy(), attributes, region_ids)

    def attributes_for(self, index: int) -> Dict[str, float]:
        return self.attributes.row(index, named=True)

    def contains_extent(self, lat: float, lon: float) -> bool:
        minx, miny, maxx, maxy = self.bounds
        return minx <= lon <= maxx and miny <= lat <= maxy

    def lookup(self, lat: float, lon: float) -> RegionMatch:
        """Find the region for a point.

        Polygons containing the point (boundary included) win, lowest dataset
        position first. Otherwise the region with the nearest centroid is used.
        Points outside the dataset extent raise NoCoverageError.
        """
        if not valid_coordinates(lat, lon):
            raise InvalidLocationError(f"Invalid coordinates: ({lat}, {lon})")
        lat, lon = float(lat), float(lon)

        if not self.contains_extent(lat, lon):
            raise NoCoverageError(lat, lon, self.bounds)

        distances = haversine(lat, lon, self.centroid_lat, self.centroid_lon)
        hits = self._tree.query(shapely.Point(lon, lat), predicate='intersects')

        if len(hits):
            index = int(np.min(hits))
            match = 'contains'
        else:
            index = int(np.argmin(distances))
            match = 'nearest'

        return RegionMatch(
            index=index,
            region_id=self.region_ids[index],
            attributes=self.attributes_for(index),
            match=match,
            distance_km=float(distances[index]),
        )


def load_regions(path: Optional[str] = None, fields: Optional[Sequence[str]] = None,
                 id_field: Optional[str] = None, verbose: bool = True) -> RegionIndex:
    """Read a polygon file (shapefile, GeoJSON, GeoPackage) into a RegionIndex."""
    path = path or SETTINGS['regions_path']
    if not os.path.exists(path):
        raise RegionDataError(f"Region dataset not found: {path}")

    if verbose:
        print(f"Loading region polygons from {path}...")
    try:
        gdf = gpd.read_file(path)
    except Exception as e:
        raise RegionDataError(f"Could not read region dataset {path}: {e}") from e
    index = RegionIndex.from_frame(gdf, fields=fields, id_field=id_field)

    if verbose:
        minx, miny, maxx, maxy = index.bounds
        print(f"Loaded {len(index)} regions with {len(index.fields)} attributes. "
              f"Extent: lon [{minx:.4f}, {maxx:.4f}], lat [{miny:.4f}, {maxy:.4f}]")
    return index
