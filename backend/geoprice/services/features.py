import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from geoprice.core.config import FEATURE_COLUMNS
from geoprice.core.errors import FeatureValidationError


@dataclass
class FeatureVector:
    """Merged feature values for a single request."""
    columns: List[str]
    values: Dict[str, float]
    overridden: List[str] = field(default_factory=list)

    def to_array(self) -> np.ndarray:
        return np.array([self.values[c] for c in self.columns], dtype=float)


def _as_float(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise FeatureValidationError(f"Field '{name}' must be numeric, got {value!r}")
    if not math.isfinite(number):
        raise FeatureValidationError(f"Field '{name}' must be finite, got {value!r}")
    return number


def assemble_features(attributes: Mapping[str, float],
                      overrides: Optional[Mapping[str, float]] = None,
                      columns: Optional[Sequence[str]] = None) -> FeatureVector:
    """Overlay caller overrides on region attributes.

    Overrides win for any shared name. Unknown override names and columns
    still missing after the merge are errors; nothing is defaulted.
    """
    columns = list(columns or FEATURE_COLUMNS)
    overrides = dict(overrides or {})

    unknown = sorted(name for name in overrides if name not in columns)
    if unknown:
        raise FeatureValidationError(f"Unknown fields: {', '.join(unknown)}", unknown=unknown)

    values = {name: _as_float(name, attributes[name]) for name in columns if name in attributes}
    for name, value in overrides.items():
        values[name] = _as_float(name, value)

    missing = [name for name in columns if name not in values]
    if missing:
        raise FeatureValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)

    return FeatureVector(
        columns=columns,
        values={name: values[name] for name in columns},
        overridden=[name for name in columns if name in overrides],
    )
