"""
Rifa System Configuration
All configurable parameters for raffles, entropy sources and certificates
"""

import os

# Database (sqlite for local development, PostgreSQL in production)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///rifas.db")

# Ticket limits
MIN_BILHETES = 1
MAX_BILHETES = int(os.getenv("RIFA_MAX_BILHETES", "10000"))

# Draw method used when a raffle does not name one (must be a registered entropy provider)
DEFAULT_SORTEIO_METODO = os.getenv("RIFA_DEFAULT_SORTEIO_METODO", "RANDOM_ORG").upper()

# External entropy sources
LOTERIA_API_URL = os.getenv(
    "LOTERIA_API_URL", "https://servicebus2.caixa.gov.br/portaldeloterias/api/lotofacil"
).rstrip("/")
RANDOM_ORG_API_URL = os.getenv("RANDOM_ORG_API_URL", "https://www.random.org/integers/")
NIST_BEACON_URL = os.getenv("NIST_BEACON_URL", "https://beacon.nist.gov/beacon/2.0").rstrip("/")

ENTROPY_HTTP_TIMEOUT = float(os.getenv("ENTROPY_HTTP_TIMEOUT", "10"))  # seconds
ENTROPY_USER_AGENT = os.getenv("ENTROPY_USER_AGENT", "caixinha-rifas/1.0")

# RANDOM_ORG / NIST degrade to the local generator when unreachable.
# LOTERIA never falls back regardless of this flag.
ENTROPY_FALLBACK_ENABLED = os.getenv("ENTROPY_FALLBACK_ENABLED", "true").lower() in ("1", "true", "yes")

# Certificates
COMPROVANTE_BASE_PATH = os.getenv("COMPROVANTE_BASE_PATH", "/api/comprovantes").rstrip("/")
