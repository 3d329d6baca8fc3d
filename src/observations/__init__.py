"""
Observation fetching from the regional (CIMIS) and archival (NCEI) networks.
"""

from .cimis import CIMISClient
from .fetcher import ObservationBackend, WeatherFetcher
from .ncei import NCEIClient, ghcnd_station_id, is_ghcnd_id
from .schemas import (
    CANONICAL_COLUMNS,
    DEFAULT_VARIABLE,
    VARIABLE_FIELDS,
    FetchFailure,
    FetchSuccess,
    FetchSummary,
    StationFetchResult,
    VariableSpec,
    get_variable,
    summarize_results,
)

__all__ = [
    'CIMISClient',
    'NCEIClient',
    'ghcnd_station_id',
    'is_ghcnd_id',
    'ObservationBackend',
    'WeatherFetcher',
    'CANONICAL_COLUMNS',
    'DEFAULT_VARIABLE',
    'VARIABLE_FIELDS',
    'FetchFailure',
    'FetchSuccess',
    'FetchSummary',
    'StationFetchResult',
    'VariableSpec',
    'get_variable',
    'summarize_results',
]
