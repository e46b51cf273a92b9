"""
Draw certificates (comprovantes)
Idempotent: the certificate id is derived from the commitment hash, so
regenerating always yields the same reference.
"""

import hashlib
import logging

from .config import COMPROVANTE_BASE_PATH
from .errors import RaffleNotDrawnError
from .lifecycle import RifaManager
from .models import STATUS_FINALIZADA

logger = logging.getLogger(__name__)


def comprovante_id_for(verificacao_hash):
    return hashlib.sha256(f"comprovante:{verificacao_hash}".encode("utf-8")).hexdigest()[:32]


class ComprovanteGenerator:
    """Builds the certificate of a finalized raffle and records its reference"""

    def __init__(self, engine, manager=None):
        self.engine = engine
        self.manager = manager or RifaManager(engine)

    def build(self, rifa):
        """Certificate document for a FINALIZADA raffle"""
        if rifa.status != STATUS_FINALIZADA or not rifa.sorteio_resultado:
            raise RaffleNotDrawnError(f"Rifa {rifa.id} has not been drawn yet", rifa_id=rifa.id)

        resultado = rifa.sorteio_resultado
        comprovante_id = comprovante_id_for(resultado.verificacao_hash)
        return {
            'id': comprovante_id,
            'url': f"{COMPROVANTE_BASE_PATH}/{comprovante_id}",
            'rifaId': rifa.id,
            'caixinhaId': rifa.caixinha_id,
            'nome': rifa.nome,
            'premio': rifa.premio,
            'numeroSorteado': resultado.numero_sorteado,
            'bilheteVencedor': resultado.bilhete_vencedor.to_dict() if resultado.bilhete_vencedor else None,
            'dataSorteio': resultado.data_sorteio_iso,
            'metodo': rifa.sorteio_metodo,
            'referencia': rifa.sorteio_referencia,
            'fonte': resultado.fonte,
            'fonteRef': resultado.fonte_ref,
            'hash': resultado.verificacao_hash,
            'hashVersao': resultado.hash_versao,
        }

    def generate(self, caixinha_id, rifa_id):
        """
        Generate (or regenerate) the certificate and attach its reference

        Safe to retry: the stored reference is written only once.

        Returns:
            dict: certificate document, with 'comprovante' set to the stored reference
        """
        rifa = self.manager.get(caixinha_id, rifa_id)
        documento = self.build(rifa)

        if rifa.sorteio_resultado.comprovante:
            stored = rifa.sorteio_resultado.comprovante
        else:
            stored = self.manager.attach_comprovante(caixinha_id, rifa_id, documento['url'])
            logger.info(f"📄 Comprovante {documento['id']} generated for rifa {rifa_id}")

        documento['comprovante'] = stored
        return documento
