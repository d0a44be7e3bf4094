import traceback
from typing import Dict, Mapping, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field, model_validator

from geoprice.core.errors import (
    FeatureValidationError,
    GeoPriceError,
    InvalidLocationError,
    NoCoverageError,
)
from geoprice.core.state import cached_data
from geoprice.services.data_loader import initialize_data
from geoprice.services.prediction import predict_for_location
from geoprice.utils.geo import get_coordinates

router = APIRouter(prefix="/api")

LOCATION_PARAMS = ('lat', 'lon', 'address')

# --------------------------
# Pydantic Models
# --------------------------
class PredictRequest(BaseModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    address: Optional[str] = None
    features: Dict[str, float] = Field(default_factory=dict)

    @model_validator(mode='after')
    def check_location(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be given together")
        if self.latitude is None and not self.address:
            raise ValueError("Provide latitude and longitude, or an address")
        return self

# --------------------------
# Helper Functions
# --------------------------
def ensure_data_initialized():
    """Ensure the region index and model are loaded into the global cache."""
    if cached_data.get('regions') is not None and cached_data.get('model') is not None:
        return
    try:
        initialize_data()
    except GeoPriceError as e:
        print(f"Data initialization failed: {e}")
        raise HTTPException(status_code=503, detail="Model not loaded")


def resolve_location(lat: Optional[float], lon: Optional[float],
                     address: Optional[str]) -> Tuple[float, float]:
    if lat is not None and lon is not None:
        return lat, lon
    if lat is not None or lon is not None:
        raise HTTPException(status_code=400, detail="lat and lon must be given together")
    if address:
        if coords := get_coordinates(address):
            return coords
        raise HTTPException(status_code=400, detail="Invalid location")
    raise HTTPException(status_code=400, detail="Missing coordinates")


def run_prediction(lat: float, lon: float, overrides: Mapping[str, float]) -> dict:
    ensure_data_initialized()
    try:
        prediction = predict_for_location(lat, lon, overrides)
    except NoCoverageError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FeatureValidationError as e:
        raise HTTPException(status_code=400, detail={
            'message': str(e),
            'missing': e.missing,
            'unknown': e.unknown,
        })
    except InvalidLocationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        print(f"Server Error: {str(e)}")
        traceback.print_exc()
        raise HTTPException(status_code=500, detail="Internal server error")

    return {
        **prediction.to_dict(),
        'latitude': lat,
        'longitude': lon,
    }

# --------------------------
# API Endpoints
# --------------------------

@router.post('/predict')
def predict_endpoint(request: PredictRequest):
    lat, lon = resolve_location(request.latitude, request.longitude, request.address)
    return run_prediction(lat, lon, request.features)


@router.get('/predict')
def predict_query_endpoint(
    request: Request,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lon: Optional[float] = Query(None, ge=-180, le=180),
    address: Optional[str] = None,
):
    """Query-string form: every parameter other than lat, lon and address is a feature override."""
    repeated = sorted(
        key for key in request.query_params.keys()
        if key not in LOCATION_PARAMS and len(request.query_params.getlist(key)) > 1
    )
    if repeated:
        raise HTTPException(status_code=400, detail=f"Repeated fields: {', '.join(repeated)}")
    overrides = {
        key: value for key, value in request.query_params.items()
        if key not in LOCATION_PARAMS
    }
    lat, lon = resolve_location(lat, lon, address)
    return run_prediction(lat, lon, overrides)


@router.get('/region')
def region_endpoint(lat: float = Query(..., ge=-90, le=90), lon: float = Query(..., ge=-180, le=180)):
    ensure_data_initialized()
    try:
        match = cached_data['regions'].lookup(lat, lon)
    except NoCoverageError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidLocationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        'id': match.region_id,
        'match': match.match,
        'distance_km': round(match.distance_km, 3),
        'attributes': match.attributes,
    }


@router.get('/model')
def model_endpoint():
    ensure_data_initialized()
    return cached_data['model'].describe()
