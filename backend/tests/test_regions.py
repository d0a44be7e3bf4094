import pytest

from geoprice.core.config import REGION_FIELDS
from geoprice.core.errors import InvalidLocationError, NoCoverageError, RegionDataError
from geoprice.services.regions import RegionIndex, load_regions

from conftest import TRACTS


def expected_attributes(tract):
    return {name: tract[name] for name in REGION_FIELDS}


def test_point_inside_polygon_returns_its_attributes(regions):
    match = regions.lookup(40.0, -75.0)

    assert match.match == 'contains'
    assert match.index == 0
    assert match.region_id == '42101000100'
    assert match.attributes == expected_attributes(TRACTS[0])


def test_second_polygon(regions):
    match = regions.lookup(40.2, -73.7)

    assert match.match == 'contains'
    assert match.region_id == '34005000200'
    assert match.attributes == expected_attributes(TRACTS[1])


def test_point_on_boundary_counts_as_inside(regions):
    match = regions.lookup(40.5, -75.0)
    assert match.match == 'contains'
    assert match.index == 0


def test_point_in_gap_falls_back_to_nearest_centroid(regions):
    # Centroids sit at lon -75.0 and -73.75; -74.2 is closer to the second
    match = regions.lookup(40.0, -74.2)

    assert match.match == 'nearest'
    assert match.region_id == '34005000200'
    assert match.distance_km == pytest.approx(38.3, abs=0.5)


@pytest.mark.parametrize('lat, lon', [(45.0, -75.0), (40.0, -80.0), (39.4, -74.0), (40.0, -73.4)])
def test_point_outside_extent_has_no_coverage(regions, lat, lon):
    with pytest.raises(NoCoverageError) as excinfo:
        regions.lookup(lat, lon)
    assert excinfo.value.bounds == regions.bounds


@pytest.mark.parametrize('lat, lon', [(None, -75.0), (95.0, -75.0), (40.0, float('nan')), ('abc', -75.0)])
def test_invalid_coordinates_rejected_before_lookup(regions, lat, lon):
    with pytest.raises(InvalidLocationError):
        regions.lookup(lat, lon)


def test_bounds_and_centroids(regions):
    assert regions.bounds == (-75.5, 39.5, -73.5, 40.5)
    assert list(regions.centroid_lon) == pytest.approx([-75.0, -73.75])
    assert list(regions.centroid_lat) == pytest.approx([40.0, 40.0])
    assert not regions.centroid_lat.flags.writeable


def test_attributes_are_coerced_to_float(region_frame):
    region_frame['population'] = ['1000', '4200']
    index = RegionIndex.from_frame(region_frame)

    assert index.attributes['population'].to_list() == [1000.0, 4200.0]
    assert index.lookup(40.0, -75.0).attributes['population'] == 1000.0


def test_non_numeric_attribute_rejected(region_frame):
    region_frame['median_income'] = ['50000', 'n/a']
    with pytest.raises(RegionDataError, match='median_income'):
        RegionIndex.from_frame(region_frame)


def test_missing_attribute_value_rejected(region_frame):
    region_frame.loc[1, 'pct_bachelors'] = None
    with pytest.raises(RegionDataError, match='pct_bachelors'):
        RegionIndex.from_frame(region_frame)


def test_missing_attribute_column_rejected(region_frame):
    with pytest.raises(RegionDataError, match='median_age'):
        RegionIndex.from_frame(region_frame.drop(columns=['median_age']))


def test_empty_dataset_rejected(region_frame):
    with pytest.raises(RegionDataError):
        RegionIndex.from_frame(region_frame.iloc[0:0])


def test_region_ids_fall_back_to_position(region_frame):
    index = RegionIndex.from_frame(region_frame.drop(columns=['GEOID']))
    assert index.region_ids == ('0', '1')


def test_projected_dataset_is_reprojected(region_frame):
    index = RegionIndex.from_frame(region_frame.to_crs('EPSG:3857'))

    match = index.lookup(40.0, -75.0)
    assert match.region_id == '42101000100'
    assert index.bounds[0] == pytest.approx(-75.5)


def test_load_regions_from_file(regions_file):
    index = load_regions(regions_file, verbose=False)

    assert len(index) == 2
    assert index.fields == REGION_FIELDS
    assert index.lookup(40.0, -75.0).attributes == expected_attributes(TRACTS[0])


def test_load_regions_missing_file(tmp_path):
    with pytest.raises(RegionDataError, match='not found'):
        load_regions(str(tmp_path / 'nope.geojson'), verbose=False)


def test_load_regions_unreadable_file(tmp_path):
    path = tmp_path / 'corrupt.geojson'
    path.write_text('not a geojson document')

    with pytest.raises(RegionDataError, match='Could not read'):
        load_regions(str(path), verbose=False)
