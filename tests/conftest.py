"""
Shared fixtures for the rifa system tests
Each test gets its own SQLite database file, a controllable clock and a fake
HTTP getter standing in for the external entropy sources.
"""

import json
import os
import sys
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rifa_system.config import LOTERIA_API_URL, NIST_BEACON_URL, RANDOM_ORG_API_URL
from rifa_system.database import create_rifa_engine, setup_rifa_database
from rifa_system.service import RifaService

CAIXINHA = "caixinha-1"

LOTERIA_CONCURSO = "3200"
LOTERIA_DEZENAS = ["01", "03", "04", "06", "07", "09", "10", "12", "13", "15", "17", "19", "20", "22", "25"]

NIST_CHAIN = 2
NIST_PULSE = 1234567
NIST_OUTPUT = "9F3A" * 32


class FixedClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeHttp:
    """
    Async stand-in for entropy.aiohttp_get

    Routes map an exact URL to (status, body) or to an exception to raise.
    Unrouted URLs fail like an unreachable host.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, body, status=200):
        if not isinstance(body, str):
            body = json.dumps(body)
        self.routes[url] = (status, body)

    def fail(self, url, error=None):
        self.routes[url] = error or aiohttp.ClientConnectionError(f"Cannot connect to {url}")

    def remove(self, url):
        self.routes.pop(url, None)

    async def __call__(self, url, params=None):
        self.calls.append((url, params))
        route = self.routes.get(url)
        if route is None:
            raise aiohttp.ClientConnectionError(f"Cannot connect to {url}")
        if isinstance(route, Exception):
            raise route
        return route

    # Source helpers

    def loteria(self, concurso=LOTERIA_CONCURSO, dezenas=None):
        url = f"{LOTERIA_API_URL}/{concurso}"
        self.add(url, {'numero': int(concurso), 'listaDezenas': dezenas or LOTERIA_DEZENAS})
        return url

    def random_org(self, value):
        self.add(RANDOM_ORG_API_URL, f"{value}\n")
        return RANDOM_ORG_API_URL

    def nist(self, output=NIST_OUTPUT, chain=NIST_CHAIN, pulse=NIST_PULSE):
        record = {'pulse': {'chainIndex': chain, 'pulseIndex': pulse, 'outputValue': output}}
        self.add(f"{NIST_BEACON_URL}/pulse/last", record)
        self.add(f"{NIST_BEACON_URL}/chain/{chain}/pulse/{pulse}", record)


@pytest.fixture
def engine(tmp_path):
    engine = create_rifa_engine(f"sqlite:///{tmp_path / 'rifas.db'}")
    assert setup_rifa_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def service(engine, http, clock):
    return RifaService(engine, http_get=http, clock=clock)


@pytest.fixture
def make_rifa(service):
    """Create an ABERTA raffle and return its model"""

    def _make(quantidade=10, **kwargs):
        kwargs.setdefault('valor_bilhete', "5.00")
        kwargs.setdefault('nome', "Rifa da caixinha")
        return service.manager.create(CAIXINHA, quantidade_bilhetes=quantidade, **kwargs)

    return _make
