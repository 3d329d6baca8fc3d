"""
CIMIS Web API Client

Fetches daily station data from the California Irrigation Management
Information System, the state's agricultural weather network.

API Documentation: https://et.water.ca.gov/Rest/Index
"""

import logging
import re
from datetime import date
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

from .schemas import CANONICAL_COLUMNS, VariableSpec
from .windows import year_windows

logger = logging.getLogger(__name__)

SERVICE_NAME = "CIMIS"


def station_number(code: str) -> str:
    """
    CIMIS station number from a catalog code.

        >>> station_number("CI006")
        '6'
        >>> station_number("131")
        '131'
    """
    match = re.search(r'(\d+)$', code.strip())
    if not match:
        raise DataFormatError(f"Cannot derive a CIMIS station number from '{code}'")
    return str(int(match.group(1)))


def response_key(data_item: str) -> str:
    """
    Response field for a requested data item.

        >>> response_key("day-air-tmp-max")
        'DayAirTmpMax'
    """
    return ''.join(part.capitalize() for part in data_item.split('-'))


class CIMISClient:
    """Client for the CIMIS daily data endpoint."""

    name = 'cimis'
    BASE_URL = "https://et.water.ca.gov/api/data"
    TIMEOUT = DEFAULT_TIMEOUT

    def __init__(
        self,
        app_key: Optional[str],
        base_url: str = BASE_URL,
        timeout: int = TIMEOUT,
        max_retries: int = 3,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize CIMIS client.

        Args:
            app_key: CIMIS application key
            base_url: Override service URL (for testing)
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            session: Pre-built session (for testing)
        """
        if not app_key:
            raise AuthenticationError(SERVICE_NAME, "no application key configured (CIMIS_APP_KEY)")

        self.app_key = app_key
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or create_session(max_retries)

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
            station_code: Catalog station code
            start: First day (inclusive)
            end: Last day (inclusive)
            variable: Canonical variable to fetch

        Returns:
            DataFrame with canonical columns plus `qc`

        Raises:
            AuthenticationError: Application key rejected
            NoDataError: Service returned no records
            RemoteServiceError: Transport or service failure
        """
        data_item = variable.remote_field(self.name)
        target = station_number(station_code)

        rows: List[Dict[str, Any]] = []
        for chunk_start, chunk_end in year_windows(start, end):
            payload = self._get({
                'targets': target,
                'startDate': chunk_start.isoformat(),
                'endDate': chunk_end.isoformat(),
                'dataItems': data_item,
                'unitOfMeasure': 'M',
            })
            rows.extend(self._parse_records(payload, station_code, data_item, variable))

        if not rows:
            raise NoDataError(SERVICE_NAME, station_code)

        df = pd.DataFrame(rows, columns=CANONICAL_COLUMNS + ['qc'])
        df['date'] = pd.to_datetime(df['date'])
        df['value'] = pd.to_numeric(df['value'], errors='coerce')

        logger.info(f"Fetched {len(df)} CIMIS records for station {station_code}")
        return df

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        query = dict(params, appKey=self.app_key)
        logger.debug(f"CIMIS request {params}")
        try:
            response = self.session.get(
                self.base_url,
                params=query,
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise AuthenticationError(SERVICE_NAME, f"HTTP {status}") from e
            raise RemoteServiceError(SERVICE_NAME, str(e), status) from e
        except requests.exceptions.RequestException as e:
            raise RemoteServiceError(SERVICE_NAME, str(e)) from e
        except ValueError as e:
            raise RemoteServiceError(SERVICE_NAME, f"invalid JSON response: {e}") from e

    def _parse_records(
        self,
        payload: Dict[str, Any],
        station_code: str,
        data_item: str,
        variable: VariableSpec
    ) -> List[Dict[str, Any]]:
        """Flatten Data.Providers[].Records[] into canonical rows."""
        key = response_key(data_item)
        rows = []

        providers = (payload.get('Data') or {}).get('Providers') or []
        for provider in providers:
            for record in provider.get('Records') or []:
                field = record.get(key) or {}
                raw_value = field.get('Value')
                qc = (field.get('Qc') or '').strip() or None
                rows.append({
                    'station_code': station_code,
                    'provider': SERVICE_NAME,
                    'date': record.get('Date'),
                    'variable': variable.name,
                    'value': raw_value if raw_value not in ('', None) else None,
                    'unit': variable.unit,
                    'qc': qc,
                })

        return rows

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
