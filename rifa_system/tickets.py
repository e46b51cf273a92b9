"""
Core Ticket Ledger Logic
Handles ticket sales and queries for a raffle
"""

import logging

from sqlalchemy.exc import IntegrityError

from .errors import (
    InvalidTicketNumber,
    RaffleClosed,
    RifaNotFound,
    TicketAlreadySold,
    ValidationError,
)
from .models import Bilhete, utcnow
from .repository import RifaRepository

logger = logging.getLogger(__name__)


class TicketLedger:
    """Records ticket-number-to-member allocations for raffles"""

    def __init__(self, engine, repository=None, clock=utcnow):
        self.engine = engine
        self.repository = repository or RifaRepository(engine)
        self.clock = clock

    def sell(self, caixinha_id, rifa_id, numero, membro_id):
        """
        Sell ticket `numero` of a raffle to a member

        The guarded version bump and the ticket insert run in one
        transaction: the bump fails unless the raffle is ABERTA and inside
        its sale window, and the (rifa_id, numero) primary key rejects a
        number that is already taken. Of any number of concurrent sales of
        the same number exactly one commits.

        Args:
            caixinha_id: Owning caixinha
            rifa_id: Raffle ID
            numero: Ticket number (1..quantidade_bilhetes)
            membro_id: Buying member

        Returns:
            Bilhete: the sold ticket

        Raises:
            InvalidTicketNumber, RaffleClosed, TicketAlreadySold, RifaNotFound
        """
        if not membro_id or not str(membro_id).strip():
            raise ValidationError("membroId is required")

        rifa = self.repository.get(caixinha_id, rifa_id)
        if not rifa:
            raise RifaNotFound(f"Rifa {rifa_id} not found", caixinha_id=caixinha_id, rifa_id=rifa_id)

        if isinstance(numero, bool) or not isinstance(numero, int):
            raise InvalidTicketNumber(
                f"Ticket number must be an integer between 1 and {rifa.quantidade_bilhetes}",
                numero=numero,
            )
        if numero < 1 or numero > rifa.quantidade_bilhetes:
            raise InvalidTicketNumber(
                f"Invalid ticket number {numero}. Must be between 1 and {rifa.quantidade_bilhetes}",
                numero=numero,
                quantidade_bilhetes=rifa.quantidade_bilhetes,
            )

        agora = self.clock()
        if not rifa.accepts_sales_at(agora):
            raise self._closed_error(rifa, agora)

        bilhete = Bilhete(numero=numero, membro_id=str(membro_id), data_compra=agora)

        try:
            with self.repository.transaction() as conn:
                ordem = self.repository.claim_open(conn, caixinha_id, rifa_id, agora, for_sale=True)
                if ordem is not None:
                    self.repository.insert_ticket(conn, rifa_id, bilhete, ordem)
        except IntegrityError:
            logger.info(f"Ticket #{numero} of rifa {rifa_id} already sold (rejected {membro_id})")
            raise TicketAlreadySold(
                f"Ticket #{numero} has already been sold",
                numero=numero,
                rifa_id=rifa_id,
            )

        if ordem is None:
            # Status or cutoff changed between the read and the guarded write
            current = self.repository.get(caixinha_id, rifa_id)
            if not current:
                raise RifaNotFound(f"Rifa {rifa_id} not found", caixinha_id=caixinha_id, rifa_id=rifa_id)
            raise self._closed_error(current, agora)

        logger.info(f"✅ Sold ticket #{numero} of rifa {rifa_id} to member {membro_id}")
        return bilhete

    def list_tickets(self, caixinha_id, rifa_id):
        """Sold tickets in sale order"""
        return self._get_rifa(caixinha_id, rifa_id).bilhetes_vendidos

    def tickets_for_member(self, caixinha_id, rifa_id, membro_id):
        """Tickets of a raffle bought by one member"""
        return [b for b in self.list_tickets(caixinha_id, rifa_id) if b.membro_id == str(membro_id)]

    def available_numbers(self, caixinha_id, rifa_id):
        """Ticket numbers not yet sold, ascending"""
        rifa = self._get_rifa(caixinha_id, rifa_id)
        vendidos = rifa.numeros_vendidos
        return [n for n in range(1, rifa.quantidade_bilhetes + 1) if n not in vendidos]

    def _get_rifa(self, caixinha_id, rifa_id):
        rifa = self.repository.get(caixinha_id, rifa_id)
        if not rifa:
            raise RifaNotFound(f"Rifa {rifa_id} not found", caixinha_id=caixinha_id, rifa_id=rifa_id)
        return rifa

    @staticmethod
    def _closed_error(rifa, agora):
        if not rifa.is_open or rifa.data_fim is None:
            return RaffleClosed(
                f"Rifa {rifa.id} is {rifa.status}; tickets can no longer be sold",
                rifa_id=rifa.id,
                status=rifa.status,
            )
        return RaffleClosed(
            f"Ticket sales for rifa {rifa.id} ended at {rifa.data_fim.isoformat()}",
            rifa_id=rifa.id,
            data_fim=rifa.data_fim.isoformat(),
            agora=agora.isoformat(),
        )
