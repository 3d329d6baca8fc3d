"""
End-to-End Pipeline Test

Runs the complete analysis against a local boundary file with a fake
station catalog and fake observation backends:
1. Load region
2. Find and filter stations
3. Fetch per station (one failing)
4. Aggregate May maxima
5. Write charts and tables
"""

import sys
from datetime import date
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

# Add src to path
src_path = Path(__file__).parent.parent.parent / 'src'
sys.path.insert(0, str(src_path))

from common.errors import AuthenticationError, NotFoundError, RemoteServiceError
from observations.ncei import NCEIClient
from observations.schemas import CANONICAL_COLUMNS
from pipeline.config import Credentials, PipelineConfig, RegionSettings
from pipeline.runner import build_backends, run_pipeline
from stations.schemas import StationStatus

from conftest import FakeResponse

CIMIS_NETWORK = "California Irrigation Management Information System (CIMIS)"
GHCND_NETWORK = "Global Historical Climatology Network (GHCND)"
COOP_NETWORK = "NWS Cooperative Observer Program (COOP)"
ASOS_NETWORK = "National Weather Service/Federal Aviation Administration (ASOS)"

# Station code -> May highs by year
MAY_HIGHS = {
    "CI131": {2019: [29.0, 31.0], 2020: [30.0]},
    "USC00047630": {2019: [33.0], 2020: [32.0, 34.0]},
    "CI250": {2020: [35.0]},
}


class FakeCatalog:
    def __init__(self, stations):
        self.stations = stations
        self.include_closed = None
        self.closed = False

    def find_stations(self, region, include_closed=True):
        self.include_closed = include_closed
        return [s for s in self.stations if include_closed or s.is_open]

    def close(self):
        self.closed = True


class FakeBackend:
    def __init__(self, name, failures=None):
        self.name = name
        self.failures = failures or {}
        self.requested = []

    def fetch_daily(self, station_code, start, end, variable):
        self.requested.append(station_code)
        if station_code in self.failures:
            raise self.failures[station_code]
        rows = []
        for year, values in MAY_HIGHS.get(station_code, {}).items():
            for day, value in enumerate(values, start=1):
                rows.append((station_code, self.name.upper(), pd.Timestamp(year, 5, day),
                             variable.name, value, variable.unit))
            # an out-of-month reading that must never count
            rows.append((station_code, self.name.upper(), pd.Timestamp(year, 6, 1),
                         variable.name, 50.0, variable.unit))
        return pd.DataFrame(rows, columns=CANONICAL_COLUMNS)


@pytest.fixture
def boundary_file(tmp_path):
    path = tmp_path / 'cbsa.geojson'
    gpd.GeoDataFrame(
        {'NAME': ["Sacramento-Roseville-Folsom, CA", "Fresno, CA"], 'GEOID': ["40900", "23420"]},
        geometry=[box(-122.5, 38.0, -120.0, 39.5), box(-120.9, 36.0, -118.4, 37.6)],
        crs="EPSG:4326",
    ).to_file(path, driver='GeoJSON')
    return path


@pytest.fixture
def catalog(make_station):
    return FakeCatalog([
        make_station("CI131", network=CIMIS_NETWORK),
        make_station("CI250", network=CIMIS_NETWORK, status=StationStatus.CLOSED,
                     start_date=date(2010, 1, 1), end_date=date(2021, 6, 30)),
        make_station("USC00047630", network=GHCND_NETWORK, start_date=date(1950, 1, 1)),
        make_station("CI999", network=CIMIS_NETWORK, name="Mobile Unit 3"),
        make_station("CI998", network=CIMIS_NETWORK, qc_flagged=True),
        make_station("XX1", network="Citizen Weather Observer Program"),
    ])


@pytest.fixture
def config(tmp_path, boundary_file):
    return PipelineConfig(
        region=RegionSettings(source=str(boundary_file)),
        output_dir=tmp_path / 'output',
    )


def backends(**failures):
    cimis = FakeBackend('cimis', failures)
    ncei = FakeBackend('ncei', failures)
    return {"CIMIS": cimis, "GHCND": ncei}


# Test Cases: Full run

def test_end_to_end(config, catalog):
    fake_backends = backends()

    result = run_pipeline(config, catalog=catalog, backends=fake_backends)

    assert result.region.identifier == "40900"
    assert [s.code for s in result.stations] == ["CI131", "CI250", "USC00047630", "XX1"]
    assert catalog.include_closed is True
    assert not catalog.closed  # caller owns the injected catalog

    # XX1 has no backend and becomes an UnsupportedProvider failure
    assert result.fetch_summary.failures_by_type == {"UnsupportedProvider": 1}
    assert fake_backends["CIMIS"].requested == ["CI131", "CI250"]

    records = [(r.year, r.mean_value, r.station_count) for r in result.extremes.records()]
    # 2019: maxima 31, 33 -> 32; 2020: maxima 30, 35, 34 -> 33
    assert records == [(2019, 32, 2), (2020, 33, 3)]

    for name in ('station_map', 'station_spans', 'annual_maxima', 'annual_maxima_html',
                 'annual_means', 'station_maxima'):
        assert result.artifacts[name].exists(), name

    table = pd.read_csv(result.artifacts['annual_means'])
    assert table['mean_value'].tolist() == [32, 33]


def test_station_failure_is_isolated(config, catalog):
    failing = backends(CI250=RemoteServiceError("cimis", "timeout", 500))

    result = run_pipeline(config, catalog=catalog, backends=failing, render=False)

    assert result.fetch_summary.failures_by_type == {"RemoteServiceError": 1, "UnsupportedProvider": 1}
    records = [(r.year, r.mean_value, r.station_count) for r in result.extremes.records()]
    # 2020 without CI250: maxima 30, 34 -> 32
    assert records == [(2019, 32, 2), (2020, 32, 2)]
    assert result.artifacts == {}


def test_threaded_run_matches_sequential(config, catalog):
    sequential = run_pipeline(config, catalog=catalog, backends=backends(), render=False)
    threaded_config = config.model_copy(
        update={'fetch': config.fetch.model_copy(update={'max_workers': 3})}
    )
    threaded = run_pipeline(threaded_config, catalog=catalog, backends=backends(), render=False)

    assert threaded.extremes.records() == sequential.extremes.records()


def test_exclude_closed_stations(config, catalog):
    open_only = config.model_copy(
        update={'stations': config.stations.model_copy(update={'include_closed': False})}
    )

    result = run_pipeline(open_only, catalog=catalog, backends=backends(), render=False)

    assert "CI250" not in [s.code for s in result.stations]


# Test Cases: Fatal errors

def test_authentication_failure_is_fatal(config, catalog):
    rejected = backends(USC00047630=AuthenticationError("ncei"))

    with pytest.raises(AuthenticationError):
        run_pipeline(config, catalog=catalog, backends=rejected, render=False)

    assert not (config.output_dir / 'annual_means.csv').exists()


def test_unknown_region_is_fatal(config, catalog):
    missing = config.model_copy(
        update={'region': config.region.model_copy(update={'name': "Sacramento, CA"})}
    )

    with pytest.raises(NotFoundError, match="Sacramento-Roseville-Folsom"):
        run_pipeline(missing, catalog=catalog, backends=backends(), render=False)


# Test Cases: Catalog networks served by the archive

ARCHIVE_MAY_HIGHS = {2019: [33.0], 2020: [32.0, 34.0]}


def cdo_handler(url, params, headers):
    """CDO answers: one GHCND station near Sacramento, May highs for 2019-2020"""
    if url.endswith('/stations'):
        return FakeResponse({
            'metadata': {'resultset': {'offset': 1, 'count': 1, 'limit': 1000}},
            'results': [{
                'id': 'GHCND:USC00047630',
                'name': 'SACRAMENTO 5 ESE, CA US',
                'latitude': 38.5555,
                'longitude': -121.4169,
                'mindate': '2019-01-01',
                'maxdate': date.today().isoformat(),
                'datacoverage': 1,
            }],
        })

    values = ARCHIVE_MAY_HIGHS.get(int(params['startdate'][:4]))
    if not values:
        return FakeResponse(None)
    return FakeResponse({
        'metadata': {'resultset': {'offset': 1, 'count': len(values), 'limit': 1000}},
        'results': [
            {
                'date': f"{params['startdate'][:4]}-05-{day:02d}T00:00:00",
                'datatype': 'TMAX',
                'station': params['stationid'],
                'attributes': ',,7,0700',
                'value': value,
            }
            for day, value in enumerate(values, start=1)
        ],
    })


def test_coop_station_fetched_from_archive(config, make_station, fake_session):
    """A COOP catalog record is linked to its GHCND station and fetched from NCEI"""
    catalog = FakeCatalog([
        make_station("CI131", network=CIMIS_NETWORK),
        make_station("SACC1", name="Sacramento 5 ESE", network=COOP_NETWORK,
                     latitude=38.5560, longitude=-121.4160),
        # Auburn airport, no archive station within reach
        make_station("KAUN", name="Auburn Municipal Airport", network=ASOS_NETWORK,
                     latitude=38.9548, longitude=-121.0817),
    ])
    credentialed = config.model_copy(
        update={'credentials': Credentials(cimis_app_key="key", ncei_token="tok")}
    )

    # default provider mapping
    backends = build_backends(credentialed, ["CIMIS", "COOP", "ASOS"])
    archive_client = backends["COOP"]
    assert isinstance(archive_client, NCEIClient)
    assert backends["ASOS"] is archive_client

    backends["CIMIS"].close()
    backends["CIMIS"] = FakeBackend('cimis')
    archive_client.session.close()
    archive_client.session = fake_session(cdo_handler)
    archive_client.request_delay = 0

    result = run_pipeline(credentialed, catalog=catalog, backends=backends, render=False)

    linked = {s.code: s for s in result.stations}
    assert linked["SACC1"].remote_id == "USC00047630"
    assert linked["SACC1"].start_date == date(2019, 1, 1)
    assert linked["KAUN"].remote_id is None

    data_calls = [c for c in archive_client.session.calls if c['url'].endswith('/data')]
    assert {c['params']['stationid'] for c in data_calls} == {"GHCND:USC00047630"}
    assert data_calls[0]['params']['startdate'] == "2019-01-01"

    # KAUN is never requested: a call sign is not a GHCND ID
    assert result.fetch_summary.failures_by_type == {"DataFormatError": 1}

    maxima = result.extremes.maxima
    sacc1 = maxima[maxima['station_code'] == "SACC1"]
    assert sacc1['provider'].unique().tolist() == ["COOP"]
    assert sacc1['value'].tolist() == [33.0, 34.0]

    # 2019: CI131 31, SACC1 33 -> 32; 2020: CI131 30, SACC1 34 -> 32
    records = [(r.year, r.mean_value, r.station_count) for r in result.extremes.records()]
    assert records == [(2019, 32, 2), (2020, 32, 2)]
