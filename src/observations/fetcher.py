"""
Weather Fetcher

Fetches one observation series per station from the backend matching the
station's provider label. Every station is fetched in isolation: a failure
becomes a FetchFailure marker and the batch carries on. Authentication
failures are the exception and abort the run.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

import pandas as pd

from common.errors import AuthenticationError, NoDataError
from stations.schemas import Station

from .schemas import (
    DEFAULT_VARIABLE,
    FetchFailure,
    FetchSuccess,
    StationFetchResult,
    VariableSpec,
    get_variable,
    summarize_results,
)

logger = logging.getLogger(__name__)


class ObservationBackend(Protocol):
    """Common interface of the provider clients."""
    name: str

    def fetch_daily(
        self,
        station_code: str,
        start: date,
        end: date,
        variable: VariableSpec
    ) -> pd.DataFrame:
        ...


class WeatherFetcher:
    """
    Per-station fetch with failure isolation.

    Args:
        backends: Provider label -> backend client, e.g.
                  {"CIMIS": CIMISClient(...), "COOP": NCEIClient(...)}
        variable: Canonical variable name
        start: Optional lower bound applied to every station's range
        end: Optional upper bound applied to every station's range
        max_workers: Thread pool size; 1 fetches sequentially
    """

    def __init__(
        self,
        backends: Dict[str, ObservationBackend],
        variable: str = DEFAULT_VARIABLE,
        start: Optional[date] = None,
        end: Optional[date] = None,
        max_workers: int = 1
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")

        self.backends = backends
        self.variable = get_variable(variable)
        self.start = start
        self.end = end
        self.max_workers = max_workers

    def fetch_window(self, station: Station) -> Tuple[date, date]:
        """
        Date range to request for a station.

        The station's operational range, clamped to the fetcher's bounds.
        Open stations run to today.
        """
        start = station.start_date or self.start
        end = station.end_date or date.today()

        if start is None:
            raise NoDataError("fetch window", station.code)
        if self.start is not None:
            start = max(start, self.start)
        if self.end is not None:
            end = min(end, self.end)

        return start, end

    def fetch_station(self, station: Station) -> StationFetchResult:
        """
        Fetch one station's series.

        Returns:
            FetchSuccess with canonical data, or FetchFailure

        Raises:
            AuthenticationError: Backend credential rejected (fatal)
        """
        provider = station.provider or ''
        backend = self.backends.get(provider)

        if backend is None:
            logger.warning(f"No backend for provider '{provider}', skipping station {station.code}")
            return FetchFailure(
                station_code=station.code,
                provider=provider,
                error=f"no backend configured for provider '{provider}'",
                error_type="UnsupportedProvider",
            )

        try:
            start, end = self.fetch_window(station)
            if start > end:
                raise NoDataError(backend.name, station.code)

            remote_code = station.remote_id or station.code
            logger.info(
                f"Fetching {self.variable.name} for {station.code} ({provider}, {remote_code}) {start} to {end}"
            )
            data = backend.fetch_daily(remote_code, start, end, self.variable)
            data = data.assign(station_code=station.code, provider=provider)

        except AuthenticationError:
            logger.error(f"Authentication failed for provider '{provider}', aborting run")
            raise
        except Exception as e:
            logger.warning(f"Fetch failed for station {station.code} ({provider}): {e}")
            return FetchFailure(
                station_code=station.code,
                provider=provider,
                error=str(e),
                error_type=type(e).__name__,
            )

        return FetchSuccess(station_code=station.code, provider=provider, data=data)

    def fetch_all(self, stations: Iterable[Station]) -> List[StationFetchResult]:
        """
        Fetch every station, one result per station in input order.

        Sequential unless max_workers > 1. In the threaded case each task
        captures its own failure; only AuthenticationError propagates.
        """
        stations = list(stations)
        logger.info(f"Fetching {len(stations)} stations (workers={self.max_workers})")

        if self.max_workers == 1:
            results = [self.fetch_station(s) for s in stations]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(self.fetch_station, stations))

        summary = summarize_results(results)
        logger.info(
            f"Fetch complete: {summary.successful_stations}/{summary.total_stations} stations, "
            f"{summary.total_records:,} records"
        )
        if summary.failed_stations:
            logger.warning(f"{summary.failed_stations} stations failed: {summary.failures_by_type}")

        return results
