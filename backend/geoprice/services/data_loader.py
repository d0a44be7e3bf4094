from typing import Optional, Sequence, Tuple

from geoprice.core.config import FEATURE_COLUMNS, REGION_FIELDS, SETTINGS
from geoprice.core.errors import ModelSchemaError
from geoprice.core.state import cached_data
from geoprice.services.model import LinearModel, load_model
from geoprice.services.regions import RegionIndex, load_regions

# =============================================================================
# STARTUP LOADING
# =============================================================================

def check_compatibility(regions: RegionIndex, model: LinearModel,
                        columns: Sequence[str] = None,
                        region_fields: Sequence[str] = None) -> None:
    """Fail unless the region attributes and the model agree with the schema.

    A mismatch is a configuration error and must stop the service from
    starting rather than being patched up per request.
    """
    columns = list(columns or FEATURE_COLUMNS)
    region_fields = list(region_fields or REGION_FIELDS)

    model.check_schema(columns)

    if regions.fields != region_fields:
        raise ModelSchemaError(
            f"Region attributes {regions.fields} do not match the declared fields {region_fields}"
        )


def initialize_data(regions_path: Optional[str] = None, model_path: Optional[str] = None,
                    verbose: Optional[bool] = None) -> Tuple[RegionIndex, LinearModel]:
    """Load the polygon dataset and the model artifact into the global cache."""
    if verbose is None:
        verbose = SETTINGS['verbose']

    if verbose:
        print("Initializing region data and price model...")

    regions = load_regions(regions_path, fields=REGION_FIELDS, verbose=verbose)
    model = load_model(model_path, verbose=verbose)
    check_compatibility(regions, model)

    cached_data.update({
        'regions': regions,
        'model': model,
    })

    if verbose:
        print(f"Data initialization complete. {len(regions)} regions, "
              f"{len(model.feature_columns)} model columns.")
    return regions, model
