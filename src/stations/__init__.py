"""
Station discovery and filtering.
"""

from .catalog import StationCatalogClient
from .filters import (
    MOBILE_STATION_PATTERN,
    UNKNOWN_PROVIDER,
    extract_provider_label,
    filter_stations,
    is_mobile_station,
    partition_by_provider,
)
from .matching import DEFAULT_MAX_DISTANCE_KM, match_archive_stations
from .schemas import Station, StationStatus

__all__ = [
    'StationCatalogClient',
    'DEFAULT_MAX_DISTANCE_KM',
    'match_archive_stations',
    'Station',
    'StationStatus',
    'MOBILE_STATION_PATTERN',
    'UNKNOWN_PROVIDER',
    'extract_provider_label',
    'filter_stations',
    'is_mobile_station',
    'partition_by_provider',
]
