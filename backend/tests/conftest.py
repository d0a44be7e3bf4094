import geopandas as gpd
import joblib
import numpy as np
import pandas as pd
import pytest
from shapely.geometry import box
from sklearn.feature_selection import VarianceThreshold
from sklearn.linear_model import LinearRegression
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import PowerTransformer, StandardScaler

from geoprice.core.config import FEATURE_COLUMNS
from geoprice.services.model import LinearModel
from geoprice.services.regions import RegionIndex

# Two tracts with a gap between lon -74.5 and -74.0
TRACTS = [
    {
        'GEOID': '42101000100',
        'population': 1000.0,
        'median_income': 50000.0,
        'median_age': 35.0,
        'pct_owner_occupied': 0.6,
        'pct_bachelors': 0.3,
        'geometry': box(-75.5, 39.5, -74.5, 40.5),
    },
    {
        'GEOID': '34005000200',
        'population': 4200.0,
        'median_income': 81000.0,
        'median_age': 41.0,
        'pct_owner_occupied': 0.75,
        'pct_bachelors': 0.45,
        'geometry': box(-74.0, 39.5, -73.5, 40.5),
    },
]


@pytest.fixture
def region_frame():
    return gpd.GeoDataFrame(TRACTS, geometry='geometry', crs='EPSG:4326')


@pytest.fixture
def regions(region_frame):
    return RegionIndex.from_frame(region_frame)


@pytest.fixture
def regions_file(region_frame, tmp_path):
    path = tmp_path / 'regions.geojson'
    region_frame.to_file(path, driver='GeoJSON')
    return str(path)


@pytest.fixture
def fixture_model():
    """Hand-built model with a recorded output of 150.0 for tract 1 with 3 bedrooms.

    median_age is dropped as near-constant; all lambdas are 1 (identity).
    """
    return LinearModel(
        feature_columns=FEATURE_COLUMNS,
        support=[True, True, False, True, True, True],
        lambdas=[1.0, 1.0, 1.0, 1.0, 1.0],
        mean=[1000.0, 40000.0, 0.5, 0.3, 2.0],
        scale=[500.0, 10000.0, 0.1, 0.1, 1.0],
        coef=[10.0, 20.0, 5.0, 7.0, 30.0],
        intercept=95.0,
        target='price',
    )


@pytest.fixture
def training_frame():
    rng = np.random.default_rng(7)
    n = 300
    frame = pd.DataFrame({
        'population': rng.uniform(500, 5000, n),
        'median_income': rng.uniform(20000, 120000, n),
        'median_age': np.full(n, 35.0),
        'pct_owner_occupied': rng.uniform(0.2, 0.9, n),
        'pct_bachelors': rng.uniform(0.1, 0.6, n),
        'bedrooms': rng.integers(1, 6, n).astype(float),
    })
    target = (
        50000
        + 2.5 * frame['median_income']
        + 20000 * frame['bedrooms']
        + 40000 * frame['pct_bachelors']
        + rng.normal(0, 5000, n)
    )
    return frame[FEATURE_COLUMNS], target


def make_pipeline():
    return Pipeline([
        ('nzv', VarianceThreshold(threshold=1e-8)),
        ('yeojohnson', PowerTransformer(method='yeo-johnson', standardize=False)),
        ('scale', StandardScaler()),
        ('ols', LinearRegression()),
    ])


@pytest.fixture
def fitted_pipeline(training_frame):
    X, y = training_frame
    return make_pipeline().fit(X.to_numpy(), y.to_numpy())


@pytest.fixture
def model_file(fitted_pipeline, tmp_path):
    path = tmp_path / 'price_model.joblib'
    joblib.dump({
        'pipeline': fitted_pipeline,
        'feature_columns': FEATURE_COLUMNS,
        'target': 'price',
        'metadata': {'trained_on': 'synthetic'},
    }, path)
    return str(path)


@pytest.fixture
def pipeline_factory():
    return make_pipeline
