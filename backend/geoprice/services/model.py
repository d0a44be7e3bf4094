"""
Fitted linear model used at serve time.

The model artifact is produced offline as a scikit-learn Pipeline:

    VarianceThreshold -> PowerTransformer(yeo-johnson) -> StandardScaler -> linear regressor

On load the fitted parameters are pulled out of the pipeline into a
LinearModel, an immutable set of numpy arrays. Scoring a request is then
plain arithmetic with no scikit-learn calls, and the column order the model
expects is explicit and can be checked against the declared schema.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

import joblib
import numpy as np
from sklearn.base import is_regressor
from sklearn.exceptions import NotFittedError
from sklearn.feature_selection import VarianceThreshold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import PowerTransformer, StandardScaler
from sklearn.utils.validation import check_is_fitted

from geoprice.core.config import SETTINGS
from geoprice.core.errors import ModelSchemaError

# Allowed preprocessing steps, in the order they must appear
STEP_ORDER = ['filter', 'power', 'scale']


def yeo_johnson(X: np.ndarray, lambdas: np.ndarray) -> np.ndarray:
    """Column-wise Yeo-Johnson transform, same branches as scikit-learn."""
    X = np.asarray(X, dtype=float)
    out = np.empty_like(X)
    eps = np.spacing(1.0)

    for j, lmbda in enumerate(lambdas):
        x = X[:, j]
        pos = x >= 0
        col = np.empty_like(x)

        if abs(lmbda) < eps:
            col[pos] = np.log1p(x[pos])
        else:
            col[pos] = (np.power(x[pos] + 1, lmbda) - 1) / lmbda

        if abs(lmbda - 2) > eps:
            col[~pos] = -(np.power(-x[~pos] + 1, 2 - lmbda) - 1) / (2 - lmbda)
        else:
            col[~pos] = -np.log1p(-x[~pos])

        out[:, j] = col
    return out


def _frozen(values, dtype=float) -> np.ndarray:
    arr = np.array(values, dtype=dtype).ravel()
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class LinearModel:
    feature_columns: List[str]
    support: np.ndarray
    lambdas: np.ndarray
    mean: np.ndarray
    scale: np.ndarray
    coef: np.ndarray
    intercept: float
    target: str = 'price'
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'feature_columns', list(self.feature_columns))
        object.__setattr__(self, 'support', _frozen(self.support, dtype=bool))
        kept = int(self.support.sum())

        for name in ('lambdas', 'mean', 'scale', 'coef'):
            arr = _frozen(getattr(self, name))
            if arr.shape != (kept,):
                raise ModelSchemaError(
                    f"Model parameter '{name}' has {arr.size} values, expected {kept}"
                )
            object.__setattr__(self, name, arr)

        if len(self.feature_columns) != self.support.size:
            raise ModelSchemaError(
                f"Model lists {len(self.feature_columns)} columns but its filter covers {self.support.size}"
            )

        # A zero scale means a constant column; leave it unscaled
        scale = np.where(self.scale == 0, 1.0, self.scale)
        object.__setattr__(self, 'scale', _frozen(scale))
        object.__setattr__(self, 'intercept', float(self.intercept))

    @property
    def kept_columns(self) -> List[str]:
        return [c for c, keep in zip(self.feature_columns, self.support) if keep]

    @property
    def dropped_columns(self) -> List[str]:
        return [c for c, keep in zip(self.feature_columns, self.support) if not keep]

    @classmethod
    def from_pipeline(cls, pipeline: Pipeline, feature_columns: Optional[Sequence[str]] = None,
                      target: str = 'price', metadata: Optional[Dict] = None) -> 'LinearModel':
        """Extract fitted parameters from a scikit-learn Pipeline."""
        if not isinstance(pipeline, Pipeline):
            raise ModelSchemaError(f"Expected a scikit-learn Pipeline, got {type(pipeline).__name__}")

        fitted_names = getattr(pipeline, 'feature_names_in_', None)
        if feature_columns is None:
            if fitted_names is None:
                raise ModelSchemaError("Model artifact does not record its feature columns")
            feature_columns = list(fitted_names)
        elif fitted_names is not None and list(fitted_names) != list(feature_columns):
            raise ModelSchemaError(
                f"Pipeline was fitted on {list(fitted_names)} but the artifact lists {list(feature_columns)}"
            )
        n_features = len(feature_columns)

        support = np.ones(n_features, dtype=bool)
        lambdas = None
        mean = None
        scale = None
        last = -1

        for name, step in pipeline.steps[:-1]:
            if step is None or step == 'passthrough':
                continue
            if isinstance(step, VarianceThreshold):
                kind = 'filter'
            elif isinstance(step, PowerTransformer):
                kind = 'power'
            elif isinstance(step, StandardScaler):
                kind = 'scale'
            else:
                raise ModelSchemaError(f"Unsupported pipeline step '{name}' ({type(step).__name__})")

            position = STEP_ORDER.index(kind)
            if position <= last:
                raise ModelSchemaError(f"Pipeline step '{name}' is out of order; expected {STEP_ORDER}")
            last = position

            try:
                check_is_fitted(step)
            except NotFittedError:
                raise ModelSchemaError(f"Pipeline step '{name}' is not fitted")

            if kind == 'filter':
                support = step.get_support()
                if support.size != n_features:
                    raise ModelSchemaError(
                        f"Filter step '{name}' was fitted on {support.size} columns, expected {n_features}"
                    )
            elif kind == 'power':
                if step.method != 'yeo-johnson' or step.standardize:
                    raise ModelSchemaError(
                        f"Power transform '{name}' must use method='yeo-johnson' and standardize=False"
                    )
                lambdas = step.lambdas_
            else:
                kept = int(support.sum())
                mean = step.mean_ if step.with_mean else np.zeros(kept)
                scale = step.scale_ if step.with_std else np.ones(kept)

        regressor = pipeline.steps[-1][1]
        if not is_regressor(regressor) or not hasattr(regressor, 'coef_'):
            raise ModelSchemaError(f"Final estimator {type(regressor).__name__} is not a linear regressor")
        coef = np.asarray(regressor.coef_, dtype=float)
        if coef.ndim > 1:
            if coef.shape[0] != 1:
                raise ModelSchemaError("Multi-output regressors are not supported")
            coef = coef[0]

        kept = int(support.sum())
        return cls(
            feature_columns=list(feature_columns),
            support=support,
            lambdas=lambdas if lambdas is not None else np.ones(kept),
            mean=mean if mean is not None else np.zeros(kept),
            scale=scale if scale is not None else np.ones(kept),
            coef=coef,
            intercept=float(np.ravel(regressor.intercept_)[0]),
            target=target,
            metadata=dict(metadata or {}),
        )

    def check_schema(self, columns: Sequence[str]) -> None:
        """Raise ModelSchemaError unless the model expects exactly these columns, in order."""
        columns = list(columns)
        if self.feature_columns == columns:
            return

        missing = [c for c in columns if c not in self.feature_columns]
        extra = [c for c in self.feature_columns if c not in columns]
        if missing or extra:
            raise ModelSchemaError(
                f"Model columns do not match the feature schema (missing: {missing}, unexpected: {extra})"
            )
        raise ModelSchemaError(
            f"Model column order {self.feature_columns} does not match the feature schema {columns}"
        )

    def transform(self, X) -> np.ndarray:
        """Apply the stored preprocessing to rows in feature_columns order."""
        X = np.atleast_2d(np.asarray(X, dtype=float))
        if X.shape[1] != len(self.feature_columns):
            raise ModelSchemaError(
                f"Expected {len(self.feature_columns)} features, got {X.shape[1]}"
            )
        X = X[:, self.support]
        X = yeo_johnson(X, self.lambdas)
        return (X - self.mean) / self.scale

    def predict(self, X):
        """Score one feature vector (returns a float) or a 2D batch (returns an array)."""
        single = np.ndim(X) == 1
        y = self.transform(X) @ self.coef + self.intercept
        return float(y[0]) if single else y

    def describe(self) -> Dict[str, Any]:
        return {
            'target': self.target,
            'feature_columns': self.feature_columns,
            'kept_columns': self.kept_columns,
            'dropped_columns': self.dropped_columns,
            'coefficients': dict(zip(self.kept_columns, self.coef.tolist())),
            'intercept': self.intercept,
            'metadata': self.metadata,
        }


def load_model(path: Optional[str] = None, verbose: bool = True) -> LinearModel:
    """Load a joblib model artifact.

    Accepts a dict bundle with 'pipeline' and 'feature_columns' keys, a bare
    fitted Pipeline with feature_names_in_, or a LinearModel.
    """
    path = path or SETTINGS['model_path']
    if not os.path.exists(path):
        raise ModelSchemaError(f"Model artifact not found: {path}")

    if verbose:
        print(f"Loading model artifact from {path}...")
    try:
        artifact = joblib.load(path)
    except Exception as e:
        raise ModelSchemaError(f"Could not read model artifact {path}: {e}") from e

    if isinstance(artifact, LinearModel):
        # Unpickling skips __post_init__; rebuild to re-run the checks and freeze arrays
        model = replace(artifact)
    elif isinstance(artifact, dict):
        if 'pipeline' not in artifact:
            raise ModelSchemaError("Model bundle has no 'pipeline' entry")
        model = LinearModel.from_pipeline(
            artifact['pipeline'],
            feature_columns=artifact.get('feature_columns'),
            target=artifact.get('target', 'price'),
            metadata=artifact.get('metadata'),
        )
    else:
        model = LinearModel.from_pipeline(artifact)

    if verbose:
        print(f"Model predicts '{model.target}' from {len(model.feature_columns)} columns "
              f"({len(model.dropped_columns)} dropped as near-constant)")
    return model
