"""
Provably Fair Utilities for Raffle Draws
Implements the SHA-256 commitment over a canonical, versioned draw record
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

HASH_DOMAIN = "rifa-sorteio"
HASH_VERSION = "v1"

# Canonical timestamp: UTC, millisecond precision, literal Z suffix
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def format_timestamp(value: datetime) -> str:
    """
    Render a datetime in the canonical form used by the commitment hash.

    Naive datetimes are treated as UTC. Sub-millisecond precision is dropped,
    so the rendered string round-trips through parse_timestamp unchanged.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return f"{value.strftime(TIMESTAMP_FORMAT)}.{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a canonical (or any ISO 8601) timestamp into an aware UTC datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def canonical_payload(caixinha_id: str, rifa_id: str, numero_sorteado: int, metodo: str,
                      referencia: Optional[str], fonte: str, fonte_ref: Optional[str],
                      timestamp: str, version: str = HASH_VERSION) -> str:
    """
    Build the canonical serialization hashed by the draw commitment.

    Layout (v1), a compact JSON array in this exact order:
        ["rifa-sorteio", "v1", caixinhaId, rifaId, numeroSorteado,
         metodo, referencia, fonte, fonteRef, timestamp]

    A positional array keeps field order independent of any dict ordering,
    and JSON string escaping keeps separators inside values unambiguous.
    """
    if version != HASH_VERSION:
        raise ValueError(f"Unsupported commitment version: {version}")

    fields = [
        HASH_DOMAIN,
        version,
        str(caixinha_id),
        str(rifa_id),
        int(numero_sorteado),
        str(metodo),
        referencia if referencia else None,
        str(fonte),
        fonte_ref if fonte_ref else None,
        str(timestamp),
    ]
    return json.dumps(fields, separators=(",", ":"), ensure_ascii=False)


def compute_verification_hash(caixinha_id: str, rifa_id: str, numero_sorteado: int, metodo: str,
                              referencia: Optional[str], fonte: str, fonte_ref: Optional[str],
                              timestamp: str, version: str = HASH_VERSION) -> str:
    """Return the hex SHA-256 digest of the canonical draw record"""
    payload = canonical_payload(
        caixinha_id, rifa_id, numero_sorteado, metodo, referencia,
        fonte, fonte_ref, timestamp, version=version
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def hash_to_range(seed: str, minimo: int, maximo: int) -> int:
    """
    Deterministically map a seed string into [minimo, maximo].

    Algorithm:
    1. SHA-256 of the seed
    2. First 16 hex chars as an integer (64 bits)
    3. minimo + (integer % span)
    """
    digest = hashlib.sha256(seed.encode("utf-8")).hexdigest()
    return hex_to_range(digest, minimo, maximo)


def hex_to_range(hex_value: str, minimo: int, maximo: int) -> int:
    """Map the leading 64 bits of a hex string into [minimo, maximo]"""
    if maximo < minimo:
        raise ValueError(f"Invalid range [{minimo}, {maximo}]")
    span = maximo - minimo + 1
    random_int = int(hex_value[:16], 16)
    return minimo + (random_int % span)


def verify_commitment(stored_hash: str, **fields: Any) -> Dict[str, Any]:
    """
    Recompute the commitment from stored fields and compare.

    Returns:
        dict with 'ok', 'hash_armazenado' and 'hash_calculado'
    """
    computed = compute_verification_hash(**fields)
    return {
        'ok': computed == stored_hash,
        'hash_armazenado': stored_hash,
        'hash_calculado': computed,
    }
