"""
Entropy Provider Adapter
Normalizes the external randomness sources behind one interface:

- LOTERIA:    number derived from a named public lottery draw. No fallback:
              if that draw cannot be fetched the draw fails.
- RANDOM_ORG: true-random integer from random.org. Falls back to the local
              generator (tagged local-fallback) when unreachable.
- NIST:       latest NIST randomness beacon pulse mapped into range. Same
              fallback policy as RANDOM_ORG.
"""

import asyncio
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import aiohttp

from utils.logging_config import log_api_call
from utils.provably_fair import hash_to_range, hex_to_range
from .config import (
    ENTROPY_FALLBACK_ENABLED,
    ENTROPY_HTTP_TIMEOUT,
    ENTROPY_USER_AGENT,
    LOTERIA_API_URL,
    NIST_BEACON_URL,
    RANDOM_ORG_API_URL,
)
from .errors import ExternalSourceUnavailable, InvalidMethod, MissingReference
from .models import FONTE_EXTERNAL, FONTE_LOCAL_FALLBACK

logger = logging.getLogger(__name__)

LOCAL_RAW_REFERENCE = "local"


class SourceResponseError(Exception):
    """The source answered, but not with something usable"""


class ReplayNotSupported(Exception):
    """The source cannot re-produce a past value"""


@dataclass
class EntropyResult:
    """A number in [min, max] and where it came from"""

    value: int
    source: str  # external | local-fallback
    raw: Optional[str]
    metodo: str


async def aiohttp_get(url, params=None, timeout=None):
    """
    GET a URL with a bounded timeout

    Returns:
        tuple: (status_code, body_text)
    """
    started = time.monotonic()
    headers = {'User-Agent': ENTROPY_USER_AGENT}
    client_timeout = aiohttp.ClientTimeout(total=timeout or ENTROPY_HTTP_TIMEOUT)

    async with aiohttp.ClientSession(headers=headers, timeout=client_timeout) as session:
        async with session.get(url, params=params) as response:
            body = await response.text()
            log_api_call(logger, 'entropy', url, response.status, time.monotonic() - started)
            return response.status, body


def local_random_number(minimo, maximo):
    """Unpredictable local number from the OS CSPRNG"""
    return minimo + secrets.randbelow(maximo - minimo + 1)


# ============================================
# PROVIDERS
# ============================================

ENTROPY_PROVIDERS = {}


def register_provider(cls):
    ENTROPY_PROVIDERS[cls.metodo] = cls
    return cls


def registered_methods():
    return tuple(ENTROPY_PROVIDERS)


class EntropyProvider:
    """Base class: fetch from the source, enforce range, apply failure policy"""

    metodo = None
    requires_reference = False
    allows_fallback = False
    replayable = False

    def __init__(self, http_get=None, fallback_enabled=ENTROPY_FALLBACK_ENABLED):
        self.http_get = http_get or aiohttp_get
        self.fallback_enabled = fallback_enabled

    def validate_reference(self, referencia):
        if self.requires_reference and (referencia is None or not str(referencia).strip()):
            raise MissingReference(f"{self.metodo} draws require a reference", metodo=self.metodo)

    async def produce_number(self, minimo, maximo, referencia=None):
        """
        Produce a number in [minimo, maximo]

        Returns:
            EntropyResult

        Raises:
            ExternalSourceUnavailable: the source failed and this method may not fall back
        """
        if maximo < minimo:
            raise ValueError(f"Invalid range [{minimo}, {maximo}]")
        self.validate_reference(referencia)

        try:
            value, raw = await self._fetch_number(minimo, maximo, referencia)
            if not minimo <= value <= maximo:
                raise SourceResponseError(f"{value} outside [{minimo}, {maximo}]")
            logger.info(f"🎲 {self.metodo} produced {value} in [{minimo}, {maximo}] (ref: {raw})")
            return EntropyResult(value=value, source=FONTE_EXTERNAL, raw=raw, metodo=self.metodo)

        except (aiohttp.ClientError, asyncio.TimeoutError, OSError,
                SourceResponseError, ValueError, KeyError, TypeError) as e:
            if not (self.allows_fallback and self.fallback_enabled):
                logger.error(f"❌ {self.metodo} source unavailable: {e}")
                raise ExternalSourceUnavailable(
                    f"{self.metodo} source unavailable: {e}",
                    metodo=self.metodo,
                    referencia=referencia,
                ) from e

            value = local_random_number(minimo, maximo)
            logger.warning(f"⚠️ {self.metodo} source failed ({e}); using local fallback -> {value}")
            return EntropyResult(value=value, source=FONTE_LOCAL_FALLBACK, raw=LOCAL_RAW_REFERENCE,
                                 metodo=self.metodo)

    async def replay(self, minimo, maximo, referencia, raw):
        """
        Re-derive a past value from the public record

        Raises:
            ReplayNotSupported: the source cannot reproduce past values
            ExternalSourceUnavailable: the record could not be fetched
        """
        raise ReplayNotSupported(f"{self.metodo} values cannot be replayed")

    async def _fetch_number(self, minimo, maximo, referencia):
        raise NotImplementedError

    async def _get_json(self, url, params=None):
        status, body = await self.http_get(url, params=params)
        if status != 200:
            raise SourceResponseError(f"HTTP {status} from {url}")

        data = json.loads(body)
        if not isinstance(data, dict):
            raise SourceResponseError(f"Expected a JSON object from {url}, got {type(data).__name__}")
        return data


@register_provider
class LoteriaProvider(EntropyProvider):
    """Number derived from a public lottery contest (Caixa lotofácil API)"""

    metodo = 'LOTERIA'
    requires_reference = True
    replayable = True

    async def fetch_draw(self, referencia):
        """
        Fetch the ordered drawn digits of a contest

        Returns:
            tuple: (concurso, ['03', '07', ...])
        """
        concurso = str(referencia).strip()
        data = await self._get_json(f"{LOTERIA_API_URL}/{quote(concurso)}")

        numero = data.get('numero')
        if numero is not None and str(numero) != concurso:
            raise SourceResponseError(f"Requested contest {concurso} but source returned {numero}")

        dezenas = data.get('listaDezenas') or data.get('dezenas')
        if not isinstance(dezenas, list) or not dezenas:
            raise SourceResponseError(f"Contest {concurso} has no drawn numbers")

        return concurso, [f"{int(d):02d}" for d in dezenas]

    @staticmethod
    def derive(concurso, dezenas, minimo, maximo):
        raw = f"{concurso}:{'-'.join(dezenas)}"
        return hash_to_range(raw, minimo, maximo), raw

    async def _fetch_number(self, minimo, maximo, referencia):
        concurso, dezenas = await self.fetch_draw(referencia)
        return self.derive(concurso, dezenas, minimo, maximo)

    async def replay(self, minimo, maximo, referencia, raw):
        try:
            value, _ = await self._fetch_number(minimo, maximo, referencia)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError,
                SourceResponseError, ValueError, KeyError, TypeError) as e:
            raise ExternalSourceUnavailable(f"LOTERIA contest {referencia} unavailable: {e}",
                                            metodo=self.metodo, referencia=referencia) from e
        return value


@register_provider
class RandomOrgProvider(EntropyProvider):
    """True-random integer from random.org (single draws are not replayable)"""

    metodo = 'RANDOM_ORG'
    allows_fallback = True

    async def _fetch_number(self, minimo, maximo, referencia):
        params = {
            'num': 1,
            'min': minimo,
            'max': maximo,
            'col': 1,
            'base': 10,
            'format': 'plain',
            'rnd': 'new',
        }
        status, body = await self.http_get(RANDOM_ORG_API_URL, params=params)
        if status != 200:
            raise SourceResponseError(f"HTTP {status} from random.org")

        text = body.strip()
        if not text.lstrip('-').isdigit():
            raise SourceResponseError(f"Malformed random.org response: {text[:50]!r}")
        return int(text), f"random.org:{text}"


@register_provider
class NistBeaconProvider(EntropyProvider):
    """NIST randomness beacon v2 pulse mapped into range"""

    metodo = 'NIST'
    allows_fallback = True
    replayable = True

    @staticmethod
    def _parse_pulse(data):
        pulse = data['pulse']
        output_value = pulse['outputValue']
        int(output_value[:16], 16)  # must be hex
        return pulse['chainIndex'], pulse['pulseIndex'], output_value

    async def _fetch_number(self, minimo, maximo, referencia):
        data = await self._get_json(f"{NIST_BEACON_URL}/pulse/last")
        chain_index, pulse_index, output_value = self._parse_pulse(data)
        return hex_to_range(output_value, minimo, maximo), f"{chain_index}:{pulse_index}"

    async def replay(self, minimo, maximo, referencia, raw):
        try:
            chain_index, pulse_index = (int(part) for part in str(raw).split(':'))
        except ValueError:
            raise ReplayNotSupported(f"Not a beacon pulse reference: {raw!r}")

        try:
            data = await self._get_json(f"{NIST_BEACON_URL}/chain/{chain_index}/pulse/{pulse_index}")
            _, _, output_value = self._parse_pulse(data)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError,
                SourceResponseError, ValueError, KeyError, TypeError) as e:
            raise ExternalSourceUnavailable(f"NIST pulse {raw} unavailable: {e}",
                                            metodo=self.metodo, referencia=raw) from e
        return hex_to_range(output_value, minimo, maximo)


def build_providers(http_get=None, fallback_enabled=ENTROPY_FALLBACK_ENABLED):
    """One instance of every registered provider, keyed by method"""
    return {
        metodo: cls(http_get=http_get, fallback_enabled=fallback_enabled)
        for metodo, cls in ENTROPY_PROVIDERS.items()
    }


def get_provider(providers, metodo):
    """Look up the provider for a method name (case-insensitive)"""
    key = str(metodo or '').strip().upper()
    provider = providers.get(key)
    if provider is None:
        raise InvalidMethod(
            f"Invalid draw method '{metodo}'. Must be one of: {', '.join(sorted(providers))}",
            metodo=metodo,
        )
    return provider
