"""
Commitment hash tests
"""

import hashlib
from datetime import datetime, timezone

import pytest

from utils.provably_fair import (
    canonical_payload,
    compute_verification_hash,
    format_timestamp,
    hash_to_range,
    hex_to_range,
    parse_timestamp,
)

FIELDS = dict(
    caixinha_id="caixinha-1",
    rifa_id="abc123",
    numero_sorteado=3,
    metodo="LOTERIA",
    referencia="3200",
    fonte="external",
    fonte_ref="3200:01-02-03",
    timestamp="2026-03-10T12:00:00.000Z",
)


def test_timestamp_is_utc_milliseconds_with_z():
    value = datetime(2026, 3, 10, 12, 0, 0, 123456, tzinfo=timezone.utc)

    assert format_timestamp(value) == "2026-03-10T12:00:00.123Z"
    assert format_timestamp(value.replace(tzinfo=None)) == "2026-03-10T12:00:00.123Z"


def test_timestamp_round_trips():
    text = "2026-03-10T12:00:00.123Z"

    assert format_timestamp(parse_timestamp(text)) == text
    assert parse_timestamp("") is None


def test_canonical_payload_layout():
    payload = canonical_payload(**FIELDS)

    assert payload == ('["rifa-sorteio","v1","caixinha-1","abc123",3,"LOTERIA","3200",'
                       '"external","3200:01-02-03","2026-03-10T12:00:00.000Z"]')
    assert compute_verification_hash(**FIELDS) == hashlib.sha256(payload.encode("utf-8")).hexdigest()


def test_missing_reference_is_null():
    payload = canonical_payload(**dict(FIELDS, referencia=None, metodo="RANDOM_ORG"))

    assert ',"RANDOM_ORG",null,' in payload


@pytest.mark.parametrize("field,value", [
    ("caixinha_id", "caixinha-2"),
    ("rifa_id", "abc124"),
    ("numero_sorteado", 4),
    ("metodo", "NIST"),
    ("referencia", "3201"),
    ("fonte", "local-fallback"),
    ("fonte_ref", "3200:01-02-04"),
    ("timestamp", "2026-03-10T12:00:00.001Z"),
])
def test_every_field_is_committed(field, value):
    assert compute_verification_hash(**dict(FIELDS, **{field: value})) != compute_verification_hash(**FIELDS)


def test_field_separators_cannot_be_shifted():
    left = compute_verification_hash(**dict(FIELDS, caixinha_id="a,b", rifa_id="c"))
    right = compute_verification_hash(**dict(FIELDS, caixinha_id="a", rifa_id="b,c"))

    assert left != right


def test_unknown_version_is_rejected():
    with pytest.raises(ValueError):
        compute_verification_hash(**FIELDS, version="v0")


def test_range_mapping_stays_in_bounds():
    for i in range(200):
        assert 1 <= hash_to_range(f"seed-{i}", 1, 7) <= 7

    assert hex_to_range("0000000000000000ffff", 1, 10) == 1
    assert hex_to_range("000000000000000a", 1, 10) == 1
    assert hex_to_range("0000000000000009", 1, 10) == 10
