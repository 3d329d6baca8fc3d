"""
NCEI Climate Data Online Client

Fetches daily summaries (GHCN-Daily) from the NOAA National Centers for
Environmental Information archive, and lists the archive's own stations so
catalog stations can be linked to their GHCND identifiers.

API Documentation: https://www.ncdc.noaa.gov/cdo-web/webservices/v2

The CDO API limits daily-data requests to one year and 1000 results per
page; requests are chunked by calendar year and paged with `offset`.
"""

import logging
import re
import threading
import time
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import pandas as pd
import requests

from common.errors import (
    AuthenticationError,
    DataFormatError,
    NoDataError,
    RemoteServiceError,
)
from common.http import DEFAULT_TIMEOUT, create_session
from region.schemas import Region
from stations.schemas import Station, StationStatus

from .schemas import CANONICAL_COLUMNS, VariableSpec
from .windows import year_windows

logger = logging.getLogger(__name__)

SERVICE_NAME = "NCEI"

ARCHIVE_NETWORK = "Global Historical Climatology Network Daily (GHCND)"

# Country code, network code, 8-character station number, e.g. USW00023232
GHCND_ID_PATTERN = re.compile(r'^(GHCND:)?[A-Z]{2}[0-9A-Z][0-9A-Z]{8}$')

# Archive stations whose record ends earlier than this are reported closed
CURRENT_RECORD_DAYS = 30


def is_ghcnd_id(code: str) -> bool:
    """True when a code already is a GHCND station identifier."""
    return bool(GHCND_ID_PATTERN.match(code.strip()))


def ghcnd_station_id(code: str) -> str:
    """
    CDO station identifier for a GHCND station code.

        >>> ghcnd_station_id("USW00023232")
        'GHCND:USW00023232'

    Raises:
        DataFormatError: code is not a GHCND identifier (e.g. an ASOS call
            sign that was never linked to the archive)
    """
    code = code.strip()
    if not is_ghcnd_id(code):
        raise DataFormatError(f"'{code}' is not a GHCND station identifier")
    return code if code.startswith('GHCND:') else f"GHCND:{code}"


class NCEIClient:
    """Client for the CDO v2 `data` and `stations` endpoints (GHCND dataset)."""

    name = 'ncei'
    BASE_URL = "https://www.ncei.noaa.gov/cdo-web/api/v2/"
    DATASET = "GHCND"
    PAGE_LIMIT = 1000  # CDO maximum
    TIMEOUT = DEFAULT_TIMEOUT

    def __init__(
        self,
        token: Optional[str],
        base_url: str = BASE_URL,
        timeout: int = TIMEOUT,
        max_retries: int = 3,
        request_delay: float = 0.2,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize NCEI client.

        Args:
            token: CDO web services token
            base_url: Override service URL (for testing)
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            request_delay: Minimum spacing between requests in seconds,
                           shared by all threads using this client (CDO allows 5/s)
            session: Pre-built session (for testing)
        """
        if not token:
            raise AuthenticationError(SERVICE_NAME, "no CDO token configured (NCEI_TOKEN)")

        self.token = token
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.timeout = timeout
        self.request_delay = request_delay
        self.session = session or create_session(max_retries)

        self._rate_lock = threading.Lock()
        self._next_request_at = 0.0

    def fetch_daily(
        self,
        station_code: str,
        start: date,
        end: date,
        variable: VariableSpec
    ) -> pd.DataFrame:
        """
        Fetch a daily series for one station.

        Args:
            station_code: GHCND station ID, prefix optional
            start: First day (inclusive)
            end: Last day (inclusive)
            variable: Canonical variable to fetch

        Returns:
            DataFrame with canonical columns plus `attributes`

        Raises:
            AuthenticationError: Token rejected
            DataFormatError: station_code is not a GHCND identifier
            NoDataError: Archive returned no records
            RemoteServiceError: Transport or service failure
        """
        datatype = variable.remote_field(self.name)
        station_id = ghcnd_station_id(station_code)

        rows: List[Dict[str, Any]] = []
        for chunk_start, chunk_end in year_windows(start, end):
            for result in self._paged('data', {
                'datasetid': self.DATASET,
                'stationid': station_id,
                'datatypeid': datatype,
                'startdate': chunk_start.isoformat(),
                'enddate': chunk_end.isoformat(),
                'units': 'metric',
            }):
                rows.append({
                    'station_code': station_code,
                    'provider': SERVICE_NAME,
                    'date': result.get('date'),
                    'variable': variable.name,
                    'value': result.get('value'),
                    'unit': variable.unit,
                    'attributes': result.get('attributes'),
                })

        if not rows:
            raise NoDataError(SERVICE_NAME, station_code)

        df = pd.DataFrame(rows, columns=CANONICAL_COLUMNS + ['attributes'])
        df['date'] = pd.to_datetime(df['date']).dt.normalize()
        df['value'] = pd.to_numeric(df['value'], errors='coerce')

        logger.info(f"Fetched {len(df)} NCEI records for station {station_code}")
        return df

    def find_stations(
        self,
        region: Region,
        variable: Optional[VariableSpec] = None
    ) -> List[Station]:
        """
        List archive stations inside a region.

        Args:
            region: Region to search (bounding box query, polygon filter)
            variable: Only stations reporting this variable

        Returns:
            Stations keyed by bare GHCND ID, sorted by code

        Raises:
            AuthenticationError: Token rejected
            RemoteServiceError: Transport or service failure
        """
        min_lon, min_lat, max_lon, max_lat = region.bounds
        params = {
            'datasetid': self.DATASET,
            'extent': f"{min_lat:.4f},{min_lon:.4f},{max_lat:.4f},{max_lon:.4f}",
        }
        if variable is not None:
            params['datatypeid'] = variable.remote_field(self.name)

        logger.info(f"Searching archive for {self.DATASET} stations in '{region.name}'")
        stations = []
        for record in self._paged('stations', params):
            station = _parse_archive_station(record)
            if station is not None and region.contains_point(station.longitude, station.latitude):
                stations.append(station)

        stations.sort(key=lambda s: s.code)
        logger.info(f"Found {len(stations)} archive stations in region")
        return stations

    def _paged(self, endpoint: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """All results of a query, following `offset` pages."""
        results: List[Dict[str, Any]] = []
        offset = 1
        while True:
            payload = self._get(endpoint, dict(params, limit=self.PAGE_LIMIT, offset=offset))
            page = payload.get('results') or []
            results.extend(page)

            resultset = (payload.get('metadata') or {}).get('resultset') or {}
            count = int(resultset.get('count', len(page)))
            offset += self.PAGE_LIMIT
            if not page or offset > count:
                return results

    def _throttle(self):
        """Space requests request_delay apart across every thread of this client."""
        if not self.request_delay:
            return
        with self._rate_lock:
            wait = self._next_request_at - time.monotonic()
            if wait > 0:
                time.sleep(wait)
            self._next_request_at = time.monotonic() + self.request_delay

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = self.base_url + endpoint
        logger.debug(f"NCEI request {url} {params}")
        self._throttle()
        try:
            response = self.session.get(
                url,
                params=params,
                headers={'token': self.token},
                timeout=self.timeout,
            )
            response.raise_for_status()
            # CDO answers an empty object when nothing matches
            return response.json() if response.content else {}
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise AuthenticationError(SERVICE_NAME, f"HTTP {status}") from e
            raise RemoteServiceError(SERVICE_NAME, str(e), status) from e
        except requests.exceptions.RequestException as e:
            raise RemoteServiceError(SERVICE_NAME, str(e)) from e
        except ValueError as e:
            raise RemoteServiceError(SERVICE_NAME, f"invalid JSON response: {e}") from e

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _parse_archive_station(record: Dict[str, Any]) -> Optional[Station]:
    """Parse one CDO station record; invalid records are skipped."""
    try:
        code = str(record['id']).split(':', 1)[-1]
        start = _parse_day(record.get('mindate'))
        last = _parse_day(record.get('maxdate'))
        is_open = last is None or last >= date.today() - timedelta(days=CURRENT_RECORD_DAYS)

        return Station(
            code=code,
            name=str(record.get('name', '')).strip(),
            network=ARCHIVE_NETWORK,
            latitude=float(record['latitude']),
            longitude=float(record['longitude']),
            status=StationStatus.OPEN if is_open else StationStatus.CLOSED,
            start_date=start,
            end_date=None if is_open else last,
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.debug(f"Skipping invalid archive station record {record.get('id')}: {e}")
        return None


def _parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return datetime.fromisoformat(str(value)[:10]).date()
