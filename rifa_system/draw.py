"""
Raffle Draw Logic
Draws the winning number from an external entropy source and commits a
SHA-256 verification hash over the canonical draw record
"""

import logging

from utils.provably_fair import HASH_VERSION, compute_verification_hash, format_timestamp, parse_timestamp
from .comprovante import ComprovanteGenerator
from .entropy import build_providers, get_provider
from .errors import AlreadyFinalizedError, NoTicketsSoldError, RaffleNotOpenError
from .lifecycle import RifaManager
from .models import STATUS_FINALIZADA, SorteioResultado, utcnow

logger = logging.getLogger(__name__)


class RifaDraw:
    """Handles raffle drawing and result commitment"""

    def __init__(self, engine, manager=None, providers=None, http_get=None, comprovantes=None, clock=utcnow):
        self.engine = engine
        self.clock = clock
        self.manager = manager or RifaManager(engine, clock=clock)
        self.providers = providers if providers is not None else build_providers(http_get=http_get)
        self.comprovantes = comprovantes or ComprovanteGenerator(engine, manager=self.manager)

    async def draw(self, caixinha_id, rifa_id, metodo, referencia=None):
        """
        Draw the winning number of an ABERTA raffle

        Every fallible step (preconditions, argument validation, the external
        entropy call) completes before the single state-changing write, which
        happens inside RifaManager.finalize(). No lock is held while waiting on
        the entropy source, and a failed attempt leaves the raffle ABERTA so
        the draw can be retried.

        An unsold winning number is a valid outcome: bilhete_vencedor is None.

        Args:
            caixinha_id: Owning caixinha
            rifa_id: Raffle ID
            metodo: LOTERIA, RANDOM_ORG or NIST
            referencia: Contest id (required for LOTERIA)

        Returns:
            SorteioResultado: committed result (comprovante set when generated)

        Raises:
            RaffleNotOpenError, NoTicketsSoldError, InvalidMethod, MissingReference,
            ExternalSourceUnavailable, AlreadyFinalizedError
        """
        rifa = self.manager.get(caixinha_id, rifa_id)
        if rifa.status == STATUS_FINALIZADA:
            raise AlreadyFinalizedError(f"Rifa {rifa_id} has already been drawn", rifa_id=rifa_id)
        if not rifa.is_open:
            raise RaffleNotOpenError(f"Rifa {rifa_id} is {rifa.status} and cannot be drawn",
                                     rifa_id=rifa_id, status=rifa.status)
        if not rifa.bilhetes_vendidos:
            raise NoTicketsSoldError(f"Rifa {rifa_id} has no tickets sold", rifa_id=rifa_id)

        provider = get_provider(self.providers, metodo)
        provider.validate_reference(referencia)
        referencia = str(referencia).strip() if referencia is not None and str(referencia).strip() else None

        logger.info(f"🎲 Drawing rifa {rifa_id} via {provider.metodo} "
                    f"(tickets sold: {len(rifa.bilhetes_vendidos)}/{rifa.quantidade_bilhetes})")

        entropy = await provider.produce_number(1, rifa.quantidade_bilhetes, referencia)

        # Timestamp is rendered once and hashed in exactly this form
        timestamp = format_timestamp(self.clock())
        verificacao_hash = compute_verification_hash(
            caixinha_id=caixinha_id,
            rifa_id=rifa_id,
            numero_sorteado=entropy.value,
            metodo=provider.metodo,
            referencia=referencia,
            fonte=entropy.source,
            fonte_ref=entropy.raw,
            timestamp=timestamp,
        )

        resultado = SorteioResultado(
            numero_sorteado=entropy.value,
            bilhete_vencedor=rifa.find_bilhete(entropy.value),
            verificacao_hash=verificacao_hash,
            data_sorteio=parse_timestamp(timestamp),
            fonte=entropy.source,
            fonte_ref=entropy.raw,
            hash_versao=HASH_VERSION,
        )

        logger.info(f"   Number drawn: #{entropy.value} (source: {entropy.source}, ref: {entropy.raw})")
        logger.info(f"   Verification hash: {verificacao_hash}")

        rifa = self.manager.finalize(caixinha_id, rifa_id, resultado, provider.metodo, referencia)

        # Certificate is a separate, retriable step and never undoes the draw
        try:
            documento = self.comprovantes.generate(caixinha_id, rifa_id)
            rifa.sorteio_resultado.comprovante = documento['comprovante']
        except Exception as e:
            logger.error(f"Failed to generate comprovante for rifa {rifa_id}: {e}")

        return rifa.sorteio_resultado
