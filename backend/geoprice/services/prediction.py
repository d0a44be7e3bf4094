# geoprice/services/prediction.py
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from geoprice.core.errors import FeatureValidationError
from geoprice.core.state import cached_data
from geoprice.services.features import FeatureVector, assemble_features
from geoprice.services.model import LinearModel
from geoprice.services.regions import RegionIndex, RegionMatch


@dataclass(frozen=True)
class Prediction:
    value: float
    target: str
    region: RegionMatch
    features: FeatureVector

    def to_dict(self) -> Dict[str, Any]:
        return {
            'prediction': self.value,
            'target': self.target,
            'region': {
                'id': self.region.region_id,
                'match': self.region.match,
                'distance_km': round(self.region.distance_km, 3),
            },
            'features': self.features.values,
            'overrides': self.features.overridden,
        }


def predict_for_location(lat: float, lon: float,
                         overrides: Optional[Mapping[str, float]] = None,
                         regions: Optional[RegionIndex] = None,
                         model: Optional[LinearModel] = None) -> Prediction:
    """Look up the region for a point, merge overrides, and score the model."""
    if regions is None:
        regions = cached_data['regions']
    if model is None:
        model = cached_data['model']

    match = regions.lookup(lat, lon)
    features = assemble_features(match.attributes, overrides, columns=model.feature_columns)
    value = model.predict(features.to_array())
    if not math.isfinite(value):
        raise FeatureValidationError("Prediction is not finite for the supplied features")

    return Prediction(value=value, target=model.target, region=match, features=features)
