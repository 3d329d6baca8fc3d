"""
Shared test fixtures: fake HTTP sessions and synthetic stations.
"""

import json
import sys
from datetime import date
from pathlib import Path

import pytest
import requests

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.content = b'' if payload is None else json.dumps(payload).encode()

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self.payload is None:
            raise ValueError("No JSON object could be decoded")
        return self.payload

    def iter_content(self, chunk_size=1):
        yield self.content


class FakeSession:
    """Records GET calls and answers them with a handler(url, params, headers)."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self.closed = False

    def get(self, url, params=None, headers=None, timeout=None, stream=False):
        self.calls.append({'url': url, 'params': dict(params or {}), 'headers': dict(headers or {})})
        result = self.handler(url, dict(params or {}), dict(headers or {}))
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


@pytest.fixture
def fake_session():
    """Factory: fake_session(handler) -> FakeSession"""
    return FakeSession


@pytest.fixture
def make_station():
    """Factory for Station objects with sensible defaults."""
    from stations.schemas import Station, StationStatus

    def _make(code, **overrides):
        fields = dict(
            code=code,
            name=f"Station {code}",
            network="California Irrigation Management Information System (CIMIS)",
            latitude=38.6,
            longitude=-121.4,
            status=StationStatus.OPEN,
            start_date=date(2015, 1, 1),
        )
        fields.update(overrides)
        return Station(**fields)

    return _make
