"""
Rifa Service
Single entry point used by the HTTP layer. Every method returns a plain
dict (camelCase wire names) or raises a RifaError subclass.
"""

import logging

from utils.error_helpers import log_exceptions
from .comprovante import ComprovanteGenerator
from .draw import RifaDraw
from .entropy import build_providers
from .lifecycle import RifaManager
from .models import utcnow
from .tickets import TicketLedger
from .verification import VerificationService

logger = logging.getLogger(__name__)

# camelCase request fields accepted by create()
CREATE_FIELDS = {
    'nome': 'nome',
    'descricao': 'descricao',
    'valorBilhete': 'valor_bilhete',
    'quantidadeBilhetes': 'quantidade_bilhetes',
    'premio': 'premio',
    'dataInicio': 'data_inicio',
    'dataFim': 'data_fim',
    'sorteioData': 'sorteio_data',
    'sorteioMetodo': 'sorteio_metodo',
    'sorteioReferencia': 'sorteio_referencia',
}


class RifaService:
    """Raffle operations scoped to a caixinha"""

    def __init__(self, engine, http_get=None, providers=None, clock=utcnow):
        self.engine = engine
        self.providers = providers if providers is not None else build_providers(http_get=http_get)

        self.manager = RifaManager(engine, clock=clock)
        self.ledger = TicketLedger(engine, repository=self.manager.repository, clock=clock)
        self.comprovantes = ComprovanteGenerator(engine, manager=self.manager)
        self.drawer = RifaDraw(engine, manager=self.manager, providers=self.providers,
                               comprovantes=self.comprovantes, clock=clock)
        self.verifier = VerificationService(engine, repository=self.manager.repository,
                                            providers=self.providers, clock=clock)

    def list(self, caixinha_id):
        with log_exceptions("listing rifas", log=logger, caixinha_id=caixinha_id):
            return [rifa.to_dict() for rifa in self.manager.list(caixinha_id)]

    def get_by_id(self, caixinha_id, rifa_id):
        with log_exceptions("fetching rifa", log=logger, caixinha_id=caixinha_id, rifa_id=rifa_id):
            return self.manager.get(caixinha_id, rifa_id).to_dict()

    def create(self, caixinha_id, data):
        """
        Create a raffle from a request body

        Args:
            caixinha_id: Owning caixinha
            data: dict with nome, valorBilhete, quantidadeBilhetes and optional
                  descricao, premio, dataInicio, dataFim, sorteioData,
                  sorteioMetodo, sorteioReferencia
        """
        kwargs = {CREATE_FIELDS[key]: value for key, value in (data or {}).items() if key in CREATE_FIELDS}
        with log_exceptions("creating rifa", log=logger, caixinha_id=caixinha_id):
            return self.manager.create(
                caixinha_id,
                nome=kwargs.pop('nome', None),
                valor_bilhete=kwargs.pop('valor_bilhete', None),
                quantidade_bilhetes=kwargs.pop('quantidade_bilhetes', None),
                **kwargs
            ).to_dict()

    def update(self, caixinha_id, rifa_id, changes, expected_version=None):
        with log_exceptions("updating rifa", log=logger, caixinha_id=caixinha_id, rifa_id=rifa_id):
            return self.manager.update(caixinha_id, rifa_id, changes, expected_version).to_dict()

    def cancel(self, caixinha_id, rifa_id, reason):
        with log_exceptions("cancelling rifa", log=logger, caixinha_id=caixinha_id, rifa_id=rifa_id):
            return self.manager.cancel(caixinha_id, rifa_id, reason).to_dict()

    def sell(self, caixinha_id, rifa_id, numero, membro_id):
        with log_exceptions("selling ticket", log=logger, rifa_id=rifa_id, numero=numero, membro_id=membro_id):
            return self.ledger.sell(caixinha_id, rifa_id, numero, membro_id).to_dict()

    async def draw(self, caixinha_id, rifa_id, metodo, referencia=None):
        with log_exceptions("drawing rifa", log=logger, rifa_id=rifa_id, metodo=metodo, referencia=referencia):
            resultado = await self.drawer.draw(caixinha_id, rifa_id, metodo, referencia)
            return resultado.to_dict()

    async def verify(self, caixinha_id, rifa_id):
        with log_exceptions("verifying rifa", log=logger, rifa_id=rifa_id):
            return await self.verifier.verify(caixinha_id, rifa_id)

    def generate_certificate(self, caixinha_id, rifa_id):
        with log_exceptions("generating comprovante", log=logger, rifa_id=rifa_id):
            return self.comprovantes.generate(caixinha_id, rifa_id)

    def delete(self, caixinha_id, rifa_id):
        with log_exceptions("deleting rifa", log=logger, caixinha_id=caixinha_id, rifa_id=rifa_id):
            return self.manager.delete(caixinha_id, rifa_id)
