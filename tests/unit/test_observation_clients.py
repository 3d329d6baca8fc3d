"""
Unit Tests for the CIMIS and NCEI clients

Tests verify:
1. Remote variable names map to the canonical schema
2. Requests are chunked by calendar year (and paged for NCEI)
3. Credential and service failures raise the right errors
"""

import sys
import threading
from datetime import date
from pathlib import Path

import pandas as pd
import pytest
from shapely.geometry import box

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from common.errors import AuthenticationError, DataFormatError, NoDataError, RemoteServiceError
from observations.cimis import CIMISClient, response_key, station_number
from observations import ncei
from observations.ncei import NCEIClient, ghcnd_station_id, is_ghcnd_id
from observations.schemas import CANONICAL_COLUMNS, get_variable
from observations.windows import year_windows
from region.schemas import Region
from stations.schemas import StationStatus

from conftest import FakeResponse

TMAX = get_variable('max_air_temperature')


# Test Cases: Helpers

def test_year_windows_split_on_calendar_years():
    windows = list(year_windows(date(2018, 6, 1), date(2020, 2, 15)))

    assert windows == [
        (date(2018, 6, 1), date(2018, 12, 31)),
        (date(2019, 1, 1), date(2019, 12, 31)),
        (date(2020, 1, 1), date(2020, 2, 15)),
    ]


def test_year_windows_empty_when_reversed():
    assert list(year_windows(date(2020, 2, 1), date(2020, 1, 1))) == []


def test_station_identifiers():
    assert station_number("CI006") == "6"
    assert station_number(" 131 ") == "131"
    assert ghcnd_station_id("USW00023232") == "GHCND:USW00023232"
    assert ghcnd_station_id("GHCND:USW00023232") == "GHCND:USW00023232"
    assert is_ghcnd_id("USC00047630")
    assert not is_ghcnd_id("KSAC")
    assert not is_ghcnd_id("CI131")

    with pytest.raises(DataFormatError):
        station_number("DAVIS")
    with pytest.raises(DataFormatError):
        ghcnd_station_id("KSAC")


def test_variable_field_mapping():
    assert TMAX.remote_field('cimis') == 'day-air-tmp-max'
    assert TMAX.remote_field('ncei') == 'TMAX'
    assert response_key('day-air-tmp-max') == 'DayAirTmpMax'

    with pytest.raises(KeyError):
        TMAX.remote_field('openmeteo')


# Test Cases: CIMIS

def cimis_payload(records):
    return {'Data': {'Providers': [{'Name': 'cimis', 'Type': 'station', 'Records': records}]}}


def cimis_record(day, value, qc=' '):
    return {
        'Date': day,
        'Station': '6',
        'DayAirTmpMax': {'Value': value, 'Qc': qc, 'Unit': '(C)'},
    }


def test_cimis_fetch_daily(fake_session):
    """Two calendar years -> two requests, canonical columns out"""
    def handler(url, params, headers):
        if params['startDate'].startswith('2019'):
            return FakeResponse(cimis_payload([cimis_record('2019-12-31', '14.2')]))
        return FakeResponse(cimis_payload([
            cimis_record('2020-01-01', '15.0', qc='Y'),
            cimis_record('2020-01-02', ''),
        ]))

    session = fake_session(handler)
    client = CIMISClient("key", session=session)

    df = client.fetch_daily("CI006", date(2019, 12, 1), date(2020, 1, 31), TMAX)

    assert len(session.calls) == 2
    first = session.calls[0]['params']
    assert first['appKey'] == "key"
    assert first['targets'] == "6"
    assert first['dataItems'] == "day-air-tmp-max"
    assert first['unitOfMeasure'] == "M"
    assert (first['startDate'], first['endDate']) == ("2019-12-01", "2019-12-31")

    assert list(df.columns) == CANONICAL_COLUMNS + ['qc']
    assert df['station_code'].unique().tolist() == ["CI006"]
    assert df['variable'].unique().tolist() == ['max_air_temperature']
    assert df['value'].iloc[0] == pytest.approx(14.2)
    assert pd.isna(df['value'].iloc[2])
    assert df['qc'].tolist()[:2] == [None, 'Y']
    assert pd.api.types.is_datetime64_any_dtype(df['date'])


def test_cimis_no_records(fake_session):
    client = CIMISClient("key", session=fake_session(lambda u, p, h: FakeResponse(cimis_payload([]))))

    with pytest.raises(NoDataError):
        client.fetch_daily("CI006", date(2020, 5, 1), date(2020, 5, 31), TMAX)


def test_cimis_rejected_key(fake_session):
    client = CIMISClient("bad", session=fake_session(lambda u, p, h: FakeResponse({}, 403)))

    with pytest.raises(AuthenticationError):
        client.fetch_daily("CI006", date(2020, 5, 1), date(2020, 5, 31), TMAX)


def test_cimis_missing_key():
    with pytest.raises(AuthenticationError):
        CIMISClient("")


def test_cimis_service_error(fake_session):
    client = CIMISClient("key", session=fake_session(lambda u, p, h: FakeResponse({}, 500)))

    with pytest.raises(RemoteServiceError):
        client.fetch_daily("CI006", date(2020, 5, 1), date(2020, 5, 31), TMAX)


# Test Cases: NCEI

def ncei_page(values, offset, count, start_day=1):
    return {
        'metadata': {'resultset': {'offset': offset, 'count': count, 'limit': 1000}},
        'results': [
            {
                'date': f"2020-05-{start_day + i:02d}T00:00:00",
                'datatype': 'TMAX',
                'station': 'GHCND:USW00023232',
                'attributes': ',,W,2400',
                'value': v,
            }
            for i, v in enumerate(values)
        ],
    }


def test_ncei_fetch_daily_pages(fake_session, monkeypatch):
    """Results beyond the page limit are fetched with offset"""
    monkeypatch.setattr(NCEIClient, 'PAGE_LIMIT', 2)

    def handler(url, params, headers):
        assert headers['token'] == "tok"
        if params['offset'] == 1:
            return FakeResponse(ncei_page([30.6, 31.1], offset=1, count=3))
        return FakeResponse(ncei_page([29.4], offset=3, count=3, start_day=3))

    session = fake_session(handler)
    client = NCEIClient("tok", request_delay=0, session=session)

    df = client.fetch_daily("USW00023232", date(2020, 5, 1), date(2020, 5, 31), TMAX)

    assert [c['params']['offset'] for c in session.calls] == [1, 3]
    assert all(c["url"].endswith("/data") for c in session.calls)
    params = session.calls[0]['params']
    assert params['datasetid'] == "GHCND"
    assert params['stationid'] == "GHCND:USW00023232"
    assert params['datatypeid'] == "TMAX"
    assert params['units'] == "metric"

    assert list(df.columns) == CANONICAL_COLUMNS + ['attributes']
    assert df['value'].tolist() == [30.6, 31.1, 29.4]
    assert df['date'].dt.day.tolist() == [1, 2, 3]
    assert df['station_code'].unique().tolist() == ["USW00023232"]


def test_ncei_chunks_by_year(fake_session):
    session = fake_session(lambda u, p, h: FakeResponse(ncei_page([20.0], offset=1, count=1)))
    client = NCEIClient("tok", request_delay=0, session=session)

    client.fetch_daily("USW00023232", date(2018, 5, 1), date(2020, 5, 31), TMAX)

    starts = [c['params']['startdate'] for c in session.calls]
    assert starts == ["2018-05-01", "2019-01-01", "2020-01-01"]


def test_ncei_empty_response_is_no_data(fake_session):
    """CDO answers an empty body when nothing matches"""
    client = NCEIClient("tok", request_delay=0, session=fake_session(lambda u, p, h: FakeResponse(None)))

    with pytest.raises(NoDataError):
        client.fetch_daily("USW00023232", date(2020, 5, 1), date(2020, 5, 31), TMAX)


def test_ncei_rejected_token(fake_session):
    client = NCEIClient("bad", request_delay=0, session=fake_session(lambda u, p, h: FakeResponse({}, 401)))

    with pytest.raises(AuthenticationError):
        client.fetch_daily("USW00023232", date(2020, 5, 1), date(2020, 5, 31), TMAX)


def test_ncei_missing_token():
    with pytest.raises(AuthenticationError):
        NCEIClient(None)


def test_ncei_unlinked_code_sends_no_request(fake_session):
    """A catalog call sign is not an archive ID"""
    session = fake_session(lambda u, p, h: FakeResponse(ncei_page([20.0], offset=1, count=1)))
    client = NCEIClient("tok", request_delay=0, session=session)

    with pytest.raises(DataFormatError):
        client.fetch_daily("KSAC", date(2020, 5, 1), date(2020, 5, 31), TMAX)
    assert session.calls == []


def archive_station(station_id, lat, lon, mindate="1940-07-01", maxdate=None, name="SACRAMENTO EXECUTIVE AIRPORT, CA US"):
    return {
        'id': station_id,
        'name': name,
        'latitude': lat,
        'longitude': lon,
        'elevation': 4.6,
        'elevationUnit': 'METERS',
        'mindate': mindate,
        'maxdate': maxdate or date.today().isoformat(),
        'datacoverage': 1,
    }


def test_ncei_find_stations(fake_session):
    region = Region(name="Test Metro", geometry=box(-122.0, 38.0, -121.0, 39.0))
    payload = {
        'metadata': {'resultset': {'offset': 1, 'count': 3, 'limit': 1000}},
        'results': [
            archive_station('GHCND:USW00023232', 38.5069, -121.4950),
            archive_station('GHCND:USC00047630', 38.5555, -121.4169, mindate="1877-01-01",
                            maxdate="1998-12-31", name="SACRAMENTO 5 ESE, CA US"),
            # inside the bounding box query but outside the polygon
            archive_station('GHCND:USC00049999', 39.5, -121.5),
        ],
    }
    session = fake_session(lambda u, p, h: FakeResponse(payload))
    client = NCEIClient("tok", request_delay=0, session=session)

    stations = client.find_stations(region, variable=TMAX)

    call = session.calls[0]
    assert call['url'].endswith("/stations")
    assert call['params']['datasetid'] == "GHCND"
    assert call['params']['datatypeid'] == "TMAX"
    assert call['params']['extent'] == "38.0000,-122.0000,39.0000,-121.0000"

    assert [s.code for s in stations] == ["USC00047630", "USW00023232"]
    closed, current = stations
    assert closed.status == StationStatus.CLOSED
    assert closed.start_date == date(1877, 1, 1)
    assert closed.end_date == date(1998, 12, 31)
    assert current.is_open and current.end_date is None
    assert current.network.endswith("(GHCND)")


# Test Cases: NCEI rate limit

class FakeClock:
    """Monotonic clock that only advances when slept on."""

    def __init__(self):
        self.now = 1000.0
        self.slept = []
        self._lock = threading.Lock()

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        with self._lock:
            self.slept.append(seconds)
            self.now += seconds


@pytest.fixture
def fake_clock(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(ncei.time, 'monotonic', clock.monotonic)
    monkeypatch.setattr(ncei.time, 'sleep', clock.sleep)
    return clock


def test_ncei_requests_spaced_across_calls(fake_session, fake_clock):
    """The first request goes out at once; later ones wait out the delay"""
    issued = []

    def handler(url, params, headers):
        issued.append(fake_clock.now)
        return FakeResponse(ncei_page([20.0], offset=1, count=1))

    client = NCEIClient("tok", request_delay=0.2, session=fake_session(handler))
    client.fetch_daily("USW00023232", date(2020, 5, 1), date(2020, 5, 31), TMAX)
    client.fetch_daily("USC00047630", date(2019, 5, 1), date(2020, 5, 31), TMAX)

    assert issued == pytest.approx([1000.0, 1000.2, 1000.4])


def test_ncei_rate_limit_shared_between_threads(fake_session, fake_clock):
    """Concurrent fetches through one client share a single request budget"""
    session = fake_session(lambda u, p, h: FakeResponse(ncei_page([20.0], offset=1, count=1)))
    client = NCEIClient("tok", request_delay=0.2, session=session)

    threads = [
        threading.Thread(
            target=client.fetch_daily,
            args=(code, date(2020, 5, 1), date(2020, 5, 31), TMAX),
        )
        for code in ("USW00023232", "USC00047630", "USC00040212", "USC00045032")
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(session.calls) == 4
    # four requests at 0.2 s spacing span 0.6 s of waiting in total
    assert sum(fake_clock.slept) == pytest.approx(0.6)
    assert fake_clock.now == pytest.approx(1000.6)
