"""
Runtime configuration for the price prediction service.

Settings come from environment variables with defaults. The feature schema
is declared here and is the single source of truth for the column order the
model was trained with.
"""

import os
from typing import List


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(',') if part.strip()]


DEFAULT_REGION_FIELDS = [
    'population',
    'median_income',
    'median_age',
    'pct_owner_occupied',
    'pct_bachelors',
]

DEFAULT_INPUT_FIELDS = ['bedrooms']

SETTINGS = {
    'regions_path': os.getenv('GEOPRICE_REGIONS_PATH', 'data/regions.geojson'),
    'model_path': os.getenv('GEOPRICE_MODEL_PATH', 'models/price_model.joblib'),
    'region_id_field': os.getenv('GEOPRICE_REGION_ID_FIELD', 'GEOID'),
    'geocoder_timeout': int(os.getenv('GEOPRICE_GEOCODER_TIMEOUT', 15)),
    'user_agent': os.getenv('GEOPRICE_USER_AGENT', 'geoprice'),
    'verbose': os.getenv('GEOPRICE_VERBOSE', '1') not in ('0', 'false', 'False', ''),
}

# Polygon attributes, in model column order
REGION_FIELDS: List[str] = _split(os.getenv('GEOPRICE_REGION_FIELDS', '')) or DEFAULT_REGION_FIELDS

# Fields only the caller can supply
INPUT_FIELDS: List[str] = _split(os.getenv('GEOPRICE_INPUT_FIELDS', '')) or DEFAULT_INPUT_FIELDS

FEATURE_COLUMNS: List[str] = REGION_FIELDS + INPUT_FIELDS

CORS_ORIGINS: List[str] = _split(os.getenv('GEOPRICE_CORS_ORIGINS', '')) or [
    "http://localhost",
    "http://localhost:80",
    "http://127.0.0.1",
    "http://127.0.0.1:80",
    "http://localhost:3000",
    "http://localhost:5000",
]
