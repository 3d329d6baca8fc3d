"""
Region loading from packaged boundary datasets.
"""

from .loader import (
    CBSA_BOUNDARY_URL,
    load_region,
    list_regions,
    read_boundaries,
    select_region,
)
from .schemas import Region

__all__ = [
    'CBSA_BOUNDARY_URL',
    'Region',
    'load_region',
    'list_regions',
    'read_boundaries',
    'select_region',
]
