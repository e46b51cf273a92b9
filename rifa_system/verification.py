"""
Draw Verification
Recomputes the commitment hash of a finalized raffle and, where the entropy
source keeps a public record, re-derives the drawn number from it.
Read-only: never writes to the database.
"""

import logging

from utils.provably_fair import format_timestamp, verify_commitment
from .entropy import ReplayNotSupported, build_providers
from .errors import ExternalSourceUnavailable, RaffleNotDrawnError, RifaNotFound
from .models import FONTE_EXTERNAL, STATUS_FINALIZADA, utcnow
from .repository import RifaRepository

logger = logging.getLogger(__name__)

FONTE_INDISPONIVEL = 'unavailable'
FONTE_NAO_APLICAVEL = 'not-applicable'
FONTE_NAO_VERIFICAVEL = 'unverifiable'


class VerificationService:
    """Audits the stored result of a raffle draw"""

    def __init__(self, engine, repository=None, providers=None, http_get=None, clock=utcnow):
        self.engine = engine
        self.repository = repository or RifaRepository(engine)
        self.providers = providers if providers is not None else build_providers(http_get=http_get)
        self.clock = clock

    async def verify(self, caixinha_id, rifa_id):
        """
        Verify a FINALIZADA raffle

        Returns:
            dict: rifaId, integridadeOk, fonteExternaOk, metodoSorteio, fonte,
                  hashArmazenado, hashCalculado, dataVerificacao

            fonteExternaOk is True/False when the public record was re-checked,
            'unavailable' when it could not be fetched, 'unverifiable' for
            sources that cannot replay a value (random.org) and
            'not-applicable' for locally generated fallbacks.

        Raises:
            RifaNotFound, RaffleNotDrawnError
        """
        rifa = self.repository.get(caixinha_id, rifa_id)
        if not rifa:
            raise RifaNotFound(f"Rifa {rifa_id} not found", caixinha_id=caixinha_id, rifa_id=rifa_id)
        if rifa.status != STATUS_FINALIZADA or not rifa.sorteio_resultado:
            raise RaffleNotDrawnError(f"Rifa {rifa_id} has not been drawn yet", rifa_id=rifa_id,
                                      status=rifa.status)

        resultado = rifa.sorteio_resultado
        integridade = self._check_integrity(rifa)
        fonte_externa = await self._check_external_source(rifa)

        verificacao = {
            'rifaId': rifa.id,
            'integridadeOk': integridade['ok'],
            'fonteExternaOk': fonte_externa,
            'metodoSorteio': rifa.sorteio_metodo,
            'fonte': resultado.fonte,
            'hashArmazenado': integridade['hash_armazenado'],
            'hashCalculado': integridade['hash_calculado'],
            'dataVerificacao': format_timestamp(self.clock()),
        }

        if integridade['ok']:
            logger.info(f"✅ Rifa {rifa_id} verified (external source: {fonte_externa})")
        else:
            logger.warning(f"⚠️ Rifa {rifa_id} failed integrity check: stored {integridade['hash_armazenado']} "
                           f"!= computed {integridade['hash_calculado']}")
        return verificacao

    def _check_integrity(self, rifa):
        resultado = rifa.sorteio_resultado
        try:
            return verify_commitment(
                resultado.verificacao_hash,
                caixinha_id=rifa.caixinha_id,
                rifa_id=rifa.id,
                numero_sorteado=resultado.numero_sorteado,
                metodo=rifa.sorteio_metodo,
                referencia=rifa.sorteio_referencia,
                fonte=resultado.fonte,
                fonte_ref=resultado.fonte_ref,
                timestamp=resultado.data_sorteio_iso,
                version=resultado.hash_versao,
            )
        except ValueError as e:
            logger.warning(f"Cannot recompute hash of rifa {rifa.id}: {e}")
            return {'ok': False, 'hash_armazenado': resultado.verificacao_hash, 'hash_calculado': None}

    async def _check_external_source(self, rifa):
        resultado = rifa.sorteio_resultado
        provider = self.providers.get(rifa.sorteio_metodo)

        if provider is None or resultado.fonte != FONTE_EXTERNAL:
            return FONTE_NAO_APLICAVEL
        if not provider.replayable:
            return FONTE_NAO_VERIFICAVEL

        try:
            value = await provider.replay(1, rifa.quantidade_bilhetes, rifa.sorteio_referencia, resultado.fonte_ref)
        except ReplayNotSupported:
            return FONTE_NAO_VERIFICAVEL
        except ExternalSourceUnavailable as e:
            logger.warning(f"Could not re-check {rifa.sorteio_metodo} source of rifa {rifa.id}: {e}")
            return FONTE_INDISPONIVEL

        return value == resultado.numero_sorteado
