"""
Raffle Lifecycle Manager
Owns the rifa aggregate and its state machine:

    ABERTA --sell-->   ABERTA
    ABERTA --draw-->   FINALIZADA  (terminal)
    ABERTA --cancel--> CANCELADA   (terminal)
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation

from utils.provably_fair import parse_timestamp
from .config import DEFAULT_SORTEIO_METODO, MAX_BILHETES, MIN_BILHETES
from .entropy import registered_methods
from .errors import (
    AlreadyFinalizedError,
    ConcurrentUpdateError,
    DeletionNotAllowed,
    InvalidMethod,
    InvalidRifaData,
    MissingReason,
    NoTicketsSoldError,
    RaffleNotDrawnError,
    RaffleNotOpenError,
    RifaNotFound,
)
from .models import Rifa, STATUS_ABERTA, STATUS_FINALIZADA, utcnow
from .repository import EDITABLE_COLUMNS, RifaRepository

logger = logging.getLogger(__name__)

CENTAVOS = Decimal('0.01')

# Wire (camelCase) names accepted by update()
FIELD_ALIASES = {
    'nome': 'nome',
    'descricao': 'descricao',
    'dataFim': 'data_fim',
    'premio': 'premio',
    'sorteioData': 'sorteio_data',
    'sorteioMetodo': 'sorteio_metodo',
    'sorteioReferencia': 'sorteio_referencia',
}


def _parse_date(value, field_name):
    if value is None or isinstance(value, datetime):
        return parse_timestamp(value) if value else None
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        raise InvalidRifaData(f"{field_name} must be an ISO 8601 date", field=field_name, value=value)


def _parse_metodo(value):
    metodo = str(value).strip().upper()
    if metodo not in registered_methods():
        raise InvalidMethod(
            f"Invalid draw method '{value}'. Must be one of: {', '.join(registered_methods())}",
            metodo=value,
        )
    return metodo


class RifaManager:
    """Creates raffles and drives their status transitions"""

    def __init__(self, engine, repository=None, clock=utcnow):
        self.engine = engine
        self.repository = repository or RifaRepository(engine)
        self.clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, caixinha_id, rifa_id):
        rifa = self.repository.get(caixinha_id, rifa_id)
        if not rifa:
            raise RifaNotFound(f"Rifa {rifa_id} not found", caixinha_id=caixinha_id, rifa_id=rifa_id)
        return rifa

    def list(self, caixinha_id):
        return self.repository.list_by_caixinha(caixinha_id)

    # ------------------------------------------------------------------
    # Creation and edits
    # ------------------------------------------------------------------

    def create(self, caixinha_id, nome, valor_bilhete, quantidade_bilhetes, descricao=None,
               premio=None, data_inicio=None, data_fim=None, sorteio_data=None,
               sorteio_metodo=None, sorteio_referencia=None):
        """
        Create a new ABERTA raffle

        Raises:
            InvalidRifaData: bad price, quantity, name or dates
            InvalidMethod: unknown sorteio_metodo
        """
        if not caixinha_id or not str(caixinha_id).strip():
            raise InvalidRifaData("caixinhaId is required", field='caixinhaId')
        if not nome or not str(nome).strip():
            raise InvalidRifaData("nome is required", field='nome')

        try:
            valor = Decimal(str(valor_bilhete))
            if valor.is_finite():
                valor = valor.quantize(CENTAVOS)
        except (InvalidOperation, ValueError):
            raise InvalidRifaData("valorBilhete must be a number", field='valorBilhete', value=valor_bilhete)
        if isinstance(valor_bilhete, bool) or not valor.is_finite() or valor <= 0:
            raise InvalidRifaData("valorBilhete must be greater than zero", field='valorBilhete',
                                  value=str(valor_bilhete))

        if isinstance(quantidade_bilhetes, bool) or not isinstance(quantidade_bilhetes, int):
            raise InvalidRifaData("quantidadeBilhetes must be an integer", field='quantidadeBilhetes',
                                  value=quantidade_bilhetes)
        if quantidade_bilhetes < MIN_BILHETES or quantidade_bilhetes > MAX_BILHETES:
            raise InvalidRifaData(
                f"quantidadeBilhetes must be between {MIN_BILHETES} and {MAX_BILHETES}",
                field='quantidadeBilhetes',
                value=quantidade_bilhetes,
            )

        agora = self.clock()
        inicio = _parse_date(data_inicio, 'dataInicio') or agora
        fim = _parse_date(data_fim, 'dataFim')
        sorteio = _parse_date(sorteio_data, 'sorteioData')
        self._check_dates(inicio, fim, sorteio)

        rifa = Rifa(
            id=uuid.uuid4().hex,
            caixinha_id=str(caixinha_id),
            nome=str(nome).strip(),
            descricao=descricao,
            valor_bilhete=valor,
            quantidade_bilhetes=quantidade_bilhetes,
            data_inicio=inicio,
            data_fim=fim,
            status=STATUS_ABERTA,
            premio=premio,
            sorteio_data=sorteio,
            sorteio_metodo=_parse_metodo(sorteio_metodo or DEFAULT_SORTEIO_METODO),
            sorteio_referencia=sorteio_referencia or None,
            versao=0,
            created_at=agora,
            updated_at=agora,
        )

        with self.repository.transaction() as conn:
            self.repository.insert(conn, rifa)

        logger.info(f"✅ Created rifa {rifa.id} '{rifa.nome}' for caixinha {caixinha_id} "
                    f"({quantidade_bilhetes} tickets at {valor})")
        return self.get(caixinha_id, rifa.id)

    def update(self, caixinha_id, rifa_id, changes, expected_version=None):
        """
        Change editable fields of an ABERTA raffle (compare-and-set on versao)

        Args:
            changes: dict keyed by snake_case or camelCase field names
            expected_version: versao the caller last saw (None = current)

        Raises:
            InvalidRifaData, InvalidMethod, RaffleNotOpenError, ConcurrentUpdateError
        """
        normalized = {}
        for key, value in (changes or {}).items():
            field_name = FIELD_ALIASES.get(key, key)
            if field_name not in EDITABLE_COLUMNS:
                raise InvalidRifaData(f"Field '{key}' cannot be changed", field=key)
            normalized[field_name] = value

        if not normalized:
            return self.get(caixinha_id, rifa_id)

        rifa = self.get(caixinha_id, rifa_id)
        if not rifa.is_open:
            raise RaffleNotOpenError(f"Rifa {rifa_id} is {rifa.status} and can no longer be changed",
                                     rifa_id=rifa_id, status=rifa.status)

        if 'nome' in normalized:
            if not normalized['nome'] or not str(normalized['nome']).strip():
                raise InvalidRifaData("nome is required", field='nome')
            normalized['nome'] = str(normalized['nome']).strip()
        if 'data_fim' in normalized:
            normalized['data_fim'] = _parse_date(normalized['data_fim'], 'dataFim')
        if 'sorteio_data' in normalized:
            normalized['sorteio_data'] = _parse_date(normalized['sorteio_data'], 'sorteioData')
        if 'sorteio_metodo' in normalized:
            normalized['sorteio_metodo'] = _parse_metodo(normalized['sorteio_metodo'] or DEFAULT_SORTEIO_METODO)
        if 'sorteio_referencia' in normalized:
            normalized['sorteio_referencia'] = normalized['sorteio_referencia'] or None

        self._check_dates(
            rifa.data_inicio,
            normalized.get('data_fim', rifa.data_fim),
            normalized.get('sorteio_data', rifa.sorteio_data),
        )

        versao = rifa.versao if expected_version is None else expected_version
        with self.repository.transaction() as conn:
            applied = self.repository.write_changes(conn, caixinha_id, rifa_id, normalized, versao, self.clock())

        if not applied:
            current = self.get(caixinha_id, rifa_id)
            if not current.is_open:
                raise RaffleNotOpenError(f"Rifa {rifa_id} is {current.status} and can no longer be changed",
                                         rifa_id=rifa_id, status=current.status)
            raise ConcurrentUpdateError(
                f"Rifa {rifa_id} was modified concurrently (expected version {versao}, found {current.versao})",
                rifa_id=rifa_id,
                expected_version=versao,
                current_version=current.versao,
            )

        logger.info(f"✅ Updated rifa {rifa_id}: {', '.join(sorted(normalized))}")
        return self.get(caixinha_id, rifa_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def cancel(self, caixinha_id, rifa_id, reason):
        """
        ABERTA -> CANCELADA (irreversible)

        Raises:
            MissingReason: reason missing or blank
            RaffleNotOpenError: already FINALIZADA or CANCELADA
        """
        if not isinstance(reason, str) or not reason.strip():
            raise MissingReason("A cancellation reason is required", rifa_id=rifa_id)

        with self.repository.transaction() as conn:
            cancelled = self.repository.write_cancel(conn, caixinha_id, rifa_id, reason.strip(), self.clock())

        if not cancelled:
            current = self.get(caixinha_id, rifa_id)
            raise RaffleNotOpenError(f"Rifa {rifa_id} is {current.status} and cannot be cancelled",
                                     rifa_id=rifa_id, status=current.status)

        logger.info(f"🚫 Cancelled rifa {rifa_id}. Reason: {reason.strip()}")
        return self.get(caixinha_id, rifa_id)

    def finalize(self, caixinha_id, rifa_id, resultado, metodo, referencia):
        """
        ABERTA -> FINALIZADA, storing the draw result in the same transaction

        The row is claimed first (version bump under the write lock), then the
        tickets are read inside the transaction so a sale that committed just
        before cannot be missed when resolving the winning ticket.

        Args:
            resultado: SorteioResultado (bilhete_vencedor is resolved here)
            metodo: Draw method
            referencia: Draw reference (contest id for LOTERIA)

        Returns:
            Rifa: the finalized raffle

        Raises:
            NoTicketsSoldError, AlreadyFinalizedError, RaffleNotOpenError, RifaNotFound
        """
        agora = self.clock()

        with self.repository.transaction() as conn:
            claimed = self.repository.claim_open(conn, caixinha_id, rifa_id, agora)
            if claimed is not None:
                bilhetes = self.repository.fetch_tickets(conn, rifa_id)
                if not bilhetes:
                    raise NoTicketsSoldError(f"Rifa {rifa_id} has no tickets sold", rifa_id=rifa_id)

                resultado.bilhete_vencedor = next(
                    (b for b in bilhetes if b.numero == resultado.numero_sorteado), None
                )
                self.repository.write_result(conn, caixinha_id, rifa_id, resultado, metodo, referencia, agora)

        if claimed is None:
            current = self.get(caixinha_id, rifa_id)
            if current.status == STATUS_FINALIZADA:
                raise AlreadyFinalizedError(f"Rifa {rifa_id} has already been drawn", rifa_id=rifa_id)
            raise RaffleNotOpenError(f"Rifa {rifa_id} is {current.status} and cannot be drawn",
                                     rifa_id=rifa_id, status=current.status)

        vencedor = resultado.bilhete_vencedor.membro_id if resultado.bilhete_vencedor else "no winner (unsold)"
        logger.info(f"🎉 Rifa {rifa_id} finalized: #{resultado.numero_sorteado} -> {vencedor}")
        return self.get(caixinha_id, rifa_id)

    def attach_comprovante(self, caixinha_id, rifa_id, comprovante):
        """Store the certificate reference once; returns the stored reference"""
        with self.repository.transaction() as conn:
            self.repository.write_comprovante(conn, caixinha_id, rifa_id, comprovante)

        rifa = self.get(caixinha_id, rifa_id)
        if rifa.status != STATUS_FINALIZADA:
            raise RaffleNotDrawnError(f"Rifa {rifa_id} has not been drawn yet", rifa_id=rifa_id)
        return rifa.sorteio_resultado.comprovante

    def delete(self, caixinha_id, rifa_id):
        """
        Delete a raffle and its tickets. FINALIZADA raffles are kept for audit.

        Raises:
            DeletionNotAllowed, RifaNotFound
        """
        with self.repository.transaction() as conn:
            deleted = self.repository.delete_unless_finalized(conn, caixinha_id, rifa_id)

        if not deleted:
            current = self.get(caixinha_id, rifa_id)
            raise DeletionNotAllowed(f"Rifa {rifa_id} is {current.status} and cannot be deleted",
                                     rifa_id=rifa_id, status=current.status)

        logger.info(f"🗑️ Deleted rifa {rifa_id} of caixinha {caixinha_id}")
        return True

    # ------------------------------------------------------------------

    @staticmethod
    def _check_dates(inicio, fim, sorteio):
        if fim and inicio and fim <= inicio:
            raise InvalidRifaData("dataFim must be after dataInicio", field='dataFim')
        if sorteio and fim and sorteio < fim:
            raise InvalidRifaData("sorteioData must not be before dataFim", field='sorteioData')
