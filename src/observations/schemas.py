"""
Observation Data Models

Canonical observation schema, per-provider field mapping, and the typed
per-station fetch results used to isolate failures.
"""

from datetime import datetime, timezone
from typing import Dict, List

import pandas as pd
from pydantic import BaseModel, Field


# Columns every provider produces, in order. Provider-specific extras
# (CIMIS `qc`, NCEI `attributes`) follow these after a merge.
CANONICAL_COLUMNS = ['station_code', 'provider', 'date', 'variable', 'value', 'unit']


class VariableSpec(BaseModel):
    """A measured variable and its remote name at each backend."""
    name: str = Field(..., description="Canonical variable name")
    unit: str = Field(..., description="Canonical unit")
    remote_fields: Dict[str, str] = Field(..., description="Backend name -> remote variable name")

    def remote_field(self, backend: str) -> str:
        if backend not in self.remote_fields:
            raise KeyError(f"Variable '{self.name}' has no mapping for backend '{backend}'")
        return self.remote_fields[backend]


# Remote schema -> canonical schema. CIMIS data items / NCEI GHCND datatypes.
VARIABLE_FIELDS: Dict[str, VariableSpec] = {
    'max_air_temperature': VariableSpec(
        name='max_air_temperature',
        unit='degC',
        remote_fields={'cimis': 'day-air-tmp-max', 'ncei': 'TMAX'},
    ),
    'min_air_temperature': VariableSpec(
        name='min_air_temperature',
        unit='degC',
        remote_fields={'cimis': 'day-air-tmp-min', 'ncei': 'TMIN'},
    ),
    'precipitation': VariableSpec(
        name='precipitation',
        unit='mm',
        remote_fields={'cimis': 'day-precip', 'ncei': 'PRCP'},
    ),
}

DEFAULT_VARIABLE = 'max_air_temperature'


def get_variable(name: str) -> VariableSpec:
    """Look up a canonical variable by name."""
    if name not in VARIABLE_FIELDS:
        raise KeyError(f"Unknown variable '{name}'. Must be one of: {list(VARIABLE_FIELDS)}")
    return VARIABLE_FIELDS[name]


def empty_observations(extra_columns: List[str] = ()) -> pd.DataFrame:
    """Empty frame with the canonical columns."""
    return pd.DataFrame(columns=CANONICAL_COLUMNS + list(extra_columns))


class StationFetchResult(BaseModel):
    """Result of fetching one station's series."""
    station_code: str
    provider: str
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return isinstance(self, FetchSuccess)

    class Config:
        arbitrary_types_allowed = True


class FetchSuccess(StationFetchResult):
    """Series fetched for a station, in the canonical schema."""
    data: pd.DataFrame

    @property
    def record_count(self) -> int:
        return len(self.data)


class FetchFailure(StationFetchResult):
    """
    Failure marker for one station.

    Typed, so failed stations are dropped by isinstance checks rather than
    by comparing values against an error string.
    """
    error: str
    error_type: str = "Error"


class FetchSummary(BaseModel):
    """Summary of a batch fetch."""
    total_stations: int
    successful_stations: int
    failed_stations: int
    total_records: int
    failures_by_type: Dict[str, int] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Success rate percentage."""
        if self.total_stations == 0:
            return 0.0
        return (self.successful_stations / self.total_stations) * 100


def summarize_results(results: List[StationFetchResult]) -> FetchSummary:
    """Count successes, failures and records in a batch."""
    failures = [r for r in results if isinstance(r, FetchFailure)]
    successes = [r for r in results if isinstance(r, FetchSuccess)]

    by_type: Dict[str, int] = {}
    for failure in failures:
        by_type[failure.error_type] = by_type.get(failure.error_type, 0) + 1

    return FetchSummary(
        total_stations=len(results),
        successful_stations=len(successes),
        failed_stations=len(failures),
        total_records=sum(s.record_count for s in successes),
        failures_by_type=by_type,
        errors=[f"{f.station_code}: {f.error}" for f in failures],
    )
