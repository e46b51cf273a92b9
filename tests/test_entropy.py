"""
Entropy provider tests
Per-source success paths, range mapping and the fallback policy
"""

import asyncio

import pytest

from conftest import LOTERIA_CONCURSO, LOTERIA_DEZENAS, NIST_CHAIN, NIST_OUTPUT, NIST_PULSE
from rifa_system.config import LOTERIA_API_URL, NIST_BEACON_URL, RANDOM_ORG_API_URL
from rifa_system.entropy import (
    LOCAL_RAW_REFERENCE,
    LoteriaProvider,
    NistBeaconProvider,
    RandomOrgProvider,
    build_providers,
    get_provider,
    registered_methods,
)
from rifa_system.errors import ExternalSourceUnavailable, InvalidMethod, MissingReference
from rifa_system.models import FONTE_EXTERNAL, FONTE_LOCAL_FALLBACK
from utils.provably_fair import hash_to_range, hex_to_range


def test_registry_contains_all_methods():
    assert set(registered_methods()) == {"LOTERIA", "RANDOM_ORG", "NIST"}


def test_get_provider_is_case_insensitive(http):
    providers = build_providers(http_get=http)

    assert isinstance(get_provider(providers, " loteria "), LoteriaProvider)
    with pytest.raises(InvalidMethod):
        get_provider(providers, "DADO")


# ============================================
# LOTERIA
# ============================================

def test_loteria_is_deterministic_for_a_contest(http):
    http.loteria()
    provider = LoteriaProvider(http_get=http)

    first = asyncio.run(provider.produce_number(1, 100, LOTERIA_CONCURSO))
    second = asyncio.run(provider.produce_number(1, 100, LOTERIA_CONCURSO))

    raw = f"{LOTERIA_CONCURSO}:{'-'.join(LOTERIA_DEZENAS)}"
    assert first.value == second.value == hash_to_range(raw, 1, 100)
    assert first.raw == raw
    assert first.source == FONTE_EXTERNAL
    assert http.calls[0][0] == f"{LOTERIA_API_URL}/{LOTERIA_CONCURSO}"


def test_loteria_pads_numeric_digits(http):
    http.loteria(dezenas=[int(d) for d in LOTERIA_DEZENAS])
    provider = LoteriaProvider(http_get=http)

    result = asyncio.run(provider.produce_number(1, 100, LOTERIA_CONCURSO))

    assert result.raw == f"{LOTERIA_CONCURSO}:{'-'.join(LOTERIA_DEZENAS)}"


def test_loteria_requires_reference(http):
    provider = LoteriaProvider(http_get=http)

    with pytest.raises(MissingReference):
        asyncio.run(provider.produce_number(1, 10, None))
    assert http.calls == []


def test_loteria_never_falls_back(http):
    http.fail(f"{LOTERIA_API_URL}/{LOTERIA_CONCURSO}")
    provider = LoteriaProvider(http_get=http, fallback_enabled=True)

    with pytest.raises(ExternalSourceUnavailable) as excinfo:
        asyncio.run(provider.produce_number(1, 10, LOTERIA_CONCURSO))

    assert excinfo.value.retryable is True


def test_loteria_rejects_other_contest(http):
    http.add(f"{LOTERIA_API_URL}/{LOTERIA_CONCURSO}", {'numero': 3199, 'listaDezenas': LOTERIA_DEZENAS})
    provider = LoteriaProvider(http_get=http)

    with pytest.raises(ExternalSourceUnavailable):
        asyncio.run(provider.produce_number(1, 10, LOTERIA_CONCURSO))


def test_loteria_rejects_undrawn_contest(http):
    http.add(f"{LOTERIA_API_URL}/{LOTERIA_CONCURSO}", {'numero': int(LOTERIA_CONCURSO), 'listaDezenas': []})
    provider = LoteriaProvider(http_get=http)

    with pytest.raises(ExternalSourceUnavailable):
        asyncio.run(provider.produce_number(1, 10, LOTERIA_CONCURSO))


@pytest.mark.parametrize("body", [
    "[]",
    "null",
    '"3200"',
    "[1, 2]",
    {'numero': int(LOTERIA_CONCURSO), 'listaDezenas': "01-02-03"},
])
def test_loteria_rejects_malformed_body(http, body):
    http.add(f"{LOTERIA_API_URL}/{LOTERIA_CONCURSO}", body)
    provider = LoteriaProvider(http_get=http)

    with pytest.raises(ExternalSourceUnavailable):
        asyncio.run(provider.produce_number(1, 10, LOTERIA_CONCURSO))


# ============================================
# RANDOM_ORG
# ============================================

def test_random_org_returns_external_value(http):
    http.random_org(7)
    provider = RandomOrgProvider(http_get=http)

    result = asyncio.run(provider.produce_number(1, 10))

    assert result.value == 7
    assert result.source == FONTE_EXTERNAL
    assert result.raw == "random.org:7"
    url, params = http.calls[0]
    assert url == RANDOM_ORG_API_URL
    assert (params['num'], params['min'], params['max'], params['format']) == (1, 1, 10, 'plain')


@pytest.mark.parametrize("route", ["down", "http-error", "garbage", "out-of-range"])
def test_random_org_falls_back_to_local(http, route):
    if route == "down":
        http.fail(RANDOM_ORG_API_URL)
    elif route == "http-error":
        http.add(RANDOM_ORG_API_URL, "Error: quota exceeded", status=503)
    elif route == "garbage":
        http.add(RANDOM_ORG_API_URL, "<html>maintenance</html>")
    else:
        http.random_org(99)
    provider = RandomOrgProvider(http_get=http, fallback_enabled=True)

    result = asyncio.run(provider.produce_number(1, 10))

    assert 1 <= result.value <= 10
    assert result.source == FONTE_LOCAL_FALLBACK
    assert result.raw == LOCAL_RAW_REFERENCE


def test_random_org_without_fallback_fails(http):
    http.fail(RANDOM_ORG_API_URL)
    provider = RandomOrgProvider(http_get=http, fallback_enabled=False)

    with pytest.raises(ExternalSourceUnavailable):
        asyncio.run(provider.produce_number(1, 10))


def test_random_org_cannot_replay(http):
    provider = RandomOrgProvider(http_get=http)

    assert provider.replayable is False


# ============================================
# NIST
# ============================================

def test_nist_maps_pulse_output_into_range(http):
    http.nist()
    provider = NistBeaconProvider(http_get=http)

    result = asyncio.run(provider.produce_number(1, 37))

    assert result.value == hex_to_range(NIST_OUTPUT, 1, 37)
    assert result.raw == f"{NIST_CHAIN}:{NIST_PULSE}"
    assert http.calls[0][0] == f"{NIST_BEACON_URL}/pulse/last"


def test_nist_replay_fetches_recorded_pulse(http):
    http.nist()
    provider = NistBeaconProvider(http_get=http)

    value = asyncio.run(provider.replay(1, 37, None, f"{NIST_CHAIN}:{NIST_PULSE}"))

    assert value == hex_to_range(NIST_OUTPUT, 1, 37)
    assert http.calls[-1][0] == f"{NIST_BEACON_URL}/chain/{NIST_CHAIN}/pulse/{NIST_PULSE}"


def test_nist_malformed_pulse_falls_back(http):
    http.add(f"{NIST_BEACON_URL}/pulse/last", {'pulse': {'chainIndex': 2}})
    provider = NistBeaconProvider(http_get=http)

    result = asyncio.run(provider.produce_number(1, 10))

    assert result.source == FONTE_LOCAL_FALLBACK
