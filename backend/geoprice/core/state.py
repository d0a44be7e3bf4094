from typing import Any, Dict

# Loaded once at startup, read-only afterwards
cached_data: Dict[str, Any] = {
    'regions': None,  # RegionIndex
    'model': None,    # LinearModel
}
