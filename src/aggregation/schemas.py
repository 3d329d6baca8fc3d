"""
Aggregated Record Models

Derived per run, never persisted.
"""

import datetime

from pydantic import BaseModel, Field


class StationYearMaximum(BaseModel):
    """Highest value one station recorded in the target month of one year."""
    year: int
    station_code: str
    provider: str
    date: datetime.date = Field(..., description="Day the maximum was observed")
    value: float


class AggregatedRecord(BaseModel):
    """Cross-station mean of the per-station maxima for one year."""
    year: int
    mean_value: int = Field(..., description="Mean of station maxima, rounded to a whole unit")
    station_count: int = Field(..., ge=1)
