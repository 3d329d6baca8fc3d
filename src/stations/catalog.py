"""
Station Catalog Client

Finds weather stations for a region through the Synoptic Data station
metadata service, which aggregates many observing networks (CIMIS, COOP,
ASOS/AWOS, RAWS, ...).

API Documentation: https://docs.synopticdata.com/services/metadata
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import requests

from common.errors import AuthenticationError, RemoteServiceError
from common.http import DEFAULT_TIMEOUT, create_session
from region.schemas import Region

from .schemas import Station, StationStatus

logger = logging.getLogger(__name__)

SERVICE_NAME = "station catalog"

# SUMMARY.RESPONSE_CODE values
RESPONSE_OK = 1
RESPONSE_NO_RESULTS = 2


class StationCatalogClient:
    """
    Client for the Synoptic Data metadata endpoints.

    Returns stations inside a region polygon, optionally including closed
    (inactive) stations.
    """

    BASE_URL = "https://api.synopticdata.com/v2/"
    TIMEOUT = DEFAULT_TIMEOUT

    def __init__(
        self,
        token: Optional[str],
        base_url: str = BASE_URL,
        timeout: int = TIMEOUT,
        max_retries: int = 3,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize catalog client.

        Args:
            token: Synoptic API token
            base_url: Override service URL (for testing)
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            session: Pre-built session (for testing)
        """
        if not token:
            raise AuthenticationError(SERVICE_NAME, "no API token configured (SYNOPTIC_TOKEN)")

        self.token = token
        self.base_url = base_url if base_url.endswith('/') else base_url + '/'
        self.timeout = timeout
        self.session = session or create_session(max_retries)
        self._network_names: Optional[Dict[str, str]] = None

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET an endpoint and check the response summary."""
        query = dict(params, token=self.token)
        url = self.base_url + endpoint

        logger.debug(f"GET {url} params={params}")
        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise AuthenticationError(SERVICE_NAME, f"HTTP {status}") from e
            raise RemoteServiceError(SERVICE_NAME, str(e), status) from e
        except requests.exceptions.RequestException as e:
            raise RemoteServiceError(SERVICE_NAME, str(e)) from e
        except ValueError as e:
            raise RemoteServiceError(SERVICE_NAME, f"invalid JSON response: {e}") from e

        summary = payload.get('SUMMARY', {})
        code = summary.get('RESPONSE_CODE', RESPONSE_OK)
        message = str(summary.get('RESPONSE_MESSAGE', ''))

        if code == RESPONSE_OK:
            return payload
        if code == RESPONSE_NO_RESULTS:
            logger.info(f"Catalog returned no results for {endpoint}")
            return payload
        if 'token' in message.lower():
            raise AuthenticationError(SERVICE_NAME, message)
        raise RemoteServiceError(SERVICE_NAME, message or f"response code {code}")

    def network_names(self) -> Dict[str, str]:
        """
        Map network IDs to structured source text, "<long name> (<short name>)".

        Fetched once per client.
        """
        if self._network_names is None:
            payload = self._get('networks', {})
            names = {}
            for network in payload.get('MNET', []):
                network_id = str(network.get('ID', ''))
                short = (network.get('SHORTNAME') or '').strip()
                long_name = (network.get('LONGNAME') or short).strip()
                if short and '(' not in long_name:
                    long_name = f"{long_name} ({short})"
                names[network_id] = long_name
            self._network_names = names
            logger.info(f"Loaded {len(names)} network names")

        return self._network_names

    def find_stations(
        self,
        region: Region,
        include_closed: bool = True
    ) -> List[Station]:
        """
        Find stations inside (or tagged as belonging to) a region.

        Args:
            region: Region to search
            include_closed: Include inactive stations

        Returns:
            Stations sorted by code

        Raises:
            AuthenticationError: Token rejected
            RemoteServiceError: Transport or service failure
        """
        min_lon, min_lat, max_lon, max_lat = region.bounds
        params = {
            'bbox': f"{min_lon:.4f},{min_lat:.4f},{max_lon:.4f},{max_lat:.4f}",
            'complete': 1,
        }
        if not include_closed:
            params['status'] = 'active'

        logger.info(f"Searching catalog for stations in '{region.name}'")
        payload = self._get('stations/metadata', params)
        networks = self.network_names()

        stations = []
        for record in payload.get('STATION', []):
            station = self._parse_station(record, networks)
            if station is None:
                continue
            if not include_closed and not station.is_open:
                continue
            in_region = region.contains_point(station.longitude, station.latitude)
            if in_region or region.name in station.region_tags:
                stations.append(station)

        stations.sort(key=lambda s: s.code)
        logger.info(
            f"Found {len(stations)} stations in region "
            f"({sum(1 for s in stations if not s.is_open)} closed)"
        )
        return stations

    def _parse_station(
        self,
        record: Dict[str, Any],
        networks: Dict[str, str]
    ) -> Optional[Station]:
        """Parse one catalog record; invalid records are skipped."""
        try:
            status = (
                StationStatus.OPEN
                if str(record.get('STATUS', 'ACTIVE')).upper() == 'ACTIVE'
                else StationStatus.CLOSED
            )
            period = record.get('PERIOD_OF_RECORD') or {}
            start = _parse_date(period.get('start'))
            end = _parse_date(period.get('end')) if status == StationStatus.CLOSED else None

            tags = record.get('REGION') or []
            if isinstance(tags, str):
                tags = [tags]

            return Station(
                code=str(record['STID']),
                name=str(record.get('NAME', '')).strip(),
                network=networks.get(str(record.get('MNET_ID', '')), ''),
                latitude=float(record['LATITUDE']),
                longitude=float(record['LONGITUDE']),
                status=status,
                start_date=start,
                end_date=end,
                qc_flagged=_as_bool(record.get('QC_FLAGGED', False)),
                region_tags=list(tags),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Skipping invalid station record {record.get('STID')}: {e}")
            return None

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace('Z', '+00:00')).date()


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'y')
    return bool(value)
