"""
Station Data Models

Pydantic schemas for weather-observing stations returned by the station
catalog. Stations are read-only reference data fetched once per run.
"""

from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, validator


class StationStatus(str, Enum):
    """Operational status reported by the catalog."""
    OPEN = "open"
    CLOSED = "closed"


class Station(BaseModel):
    """
    Fixed-location weather-observing station.

    `network` is the structured source text from the catalog, e.g.
    "California Irrigation Management Information System (CIMIS)".
    `provider` is the label extracted from it (see stations.filters).
    """
    code: str = Field(..., description="Unique station identifier")
    name: str = Field(..., description="Station name")
    network: str = Field(default="", description="Network / data source description")
    provider: Optional[str] = Field(None, description="Provider label, set when partitioned")
    remote_id: Optional[str] = Field(None, description="Identifier at the observation backend, when it differs from code")
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    status: StationStatus = StationStatus.OPEN
    start_date: Optional[date] = Field(None, description="First day of record")
    end_date: Optional[date] = Field(None, description="Last day of record (None = still open)")
    qc_flagged: bool = Field(default=False, description="Catalog marks station as do-not-use")
    region_tags: List[str] = Field(default_factory=list)

    @validator('end_date')
    def end_not_before_start(cls, v, values):
        """Operational range must be ordered"""
        start = values.get('start_date')
        if v is not None and start is not None and v < start:
            raise ValueError(f"end_date {v} is before start_date {start}")
        return v

    @property
    def is_open(self) -> bool:
        return self.status == StationStatus.OPEN

    def with_provider(self, provider: str) -> 'Station':
        """Return a copy tagged with a provider label."""
        return self.model_copy(update={'provider': provider})

    def linked_to(self, archive_station: 'Station') -> 'Station':
        """
        Return a copy fetched under another station's identifier.

        The linked station's first day of record becomes the start date
        unless that would fall after this station's end date.
        """
        start = archive_station.start_date or self.start_date
        if start is not None and self.end_date is not None and start > self.end_date:
            start = self.start_date
        return self.model_copy(update={
            'remote_id': archive_station.code,
            'start_date': start,
        })

    class Config:
        frozen = True
