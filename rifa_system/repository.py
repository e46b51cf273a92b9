"""
Rifa persistence
SQL access for raffles and sold tickets. All conditional writes are guarded
by status (and version) predicates so callers get compare-and-set semantics.
"""

import json
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import text

from utils.provably_fair import format_timestamp, parse_timestamp
from .database import READ_ONLY_OPTION
from .models import (
    Bilhete,
    Rifa,
    SorteioResultado,
    STATUS_ABERTA,
    STATUS_CANCELADA,
    STATUS_FINALIZADA,
)


# Columns callers may change through write_changes()
EDITABLE_COLUMNS = {
    'nome': 'nome',
    'descricao': 'descricao',
    'data_fim': 'data_fim',
    'premio': 'premio',
    'sorteio_data': 'sorteio_data',
    'sorteio_metodo': 'sorteio_metodo',
    'sorteio_referencia': 'sorteio_referencia',
}

TIMESTAMP_COLUMNS = {'data_inicio', 'data_fim', 'sorteio_data', 'created_at', 'updated_at'}

SELECT_RIFA_SQL = """
    SELECT
        id, caixinha_id, nome, descricao, valor_bilhete, quantidade_bilhetes,
        data_inicio, data_fim, status, premio, sorteio_data, sorteio_metodo,
        sorteio_referencia, sorteio_resultado, comprovante, motivo_cancelamento,
        versao, created_at, updated_at
    FROM rifas
"""


def _db_value(column, value):
    if column in TIMESTAMP_COLUMNS and value is not None:
        return format_timestamp(value)
    return value


class RifaRepository:
    """Reads and guarded writes against the rifas / rifa_bilhetes tables"""

    def __init__(self, engine):
        self.engine = engine

    def transaction(self):
        """Open a transaction; commits on success, rolls back on exception"""
        return self.engine.begin()

    @contextmanager
    def read_transaction(self):
        """Deferred transaction for reads; does not wait on open writers"""
        with self.engine.connect() as conn:
            conn.execution_options(**{READ_ONLY_OPTION: True})
            with conn.begin():
                yield conn

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, caixinha_id, rifa_id):
        with self.read_transaction() as conn:
            return self.fetch(conn, caixinha_id, rifa_id)

    def list_by_caixinha(self, caixinha_id):
        with self.read_transaction() as conn:
            return self.fetch_all(conn, caixinha_id)

    def fetch(self, conn, caixinha_id, rifa_id):
        row = conn.execute(
            text(SELECT_RIFA_SQL + " WHERE id = :rifa_id AND caixinha_id = :caixinha_id"),
            {'rifa_id': rifa_id, 'caixinha_id': caixinha_id},
        ).mappings().fetchone()

        if not row:
            return None
        return self._row_to_rifa(row, self.fetch_tickets(conn, rifa_id))

    def fetch_all(self, conn, caixinha_id):
        rows = conn.execute(
            text(SELECT_RIFA_SQL + " WHERE caixinha_id = :caixinha_id ORDER BY created_at, id"),
            {'caixinha_id': caixinha_id},
        ).mappings().fetchall()

        return [self._row_to_rifa(row, self.fetch_tickets(conn, row['id'])) for row in rows]

    def fetch_tickets(self, conn, rifa_id):
        result = conn.execute(text("""
            SELECT numero, membro_id, data_compra
            FROM rifa_bilhetes
            WHERE rifa_id = :rifa_id
            ORDER BY ordem
        """), {'rifa_id': rifa_id})

        return [
            Bilhete(numero=row[0], membro_id=row[1], data_compra=parse_timestamp(row[2]))
            for row in result
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, conn, rifa):
        conn.execute(text("""
            INSERT INTO rifas
                (id, caixinha_id, nome, descricao, valor_bilhete, quantidade_bilhetes,
                 data_inicio, data_fim, status, premio, sorteio_data, sorteio_metodo,
                 sorteio_referencia, versao, created_at, updated_at)
            VALUES
                (:id, :caixinha_id, :nome, :descricao, :valor_bilhete, :quantidade_bilhetes,
                 :data_inicio, :data_fim, :status, :premio, :sorteio_data, :sorteio_metodo,
                 :sorteio_referencia, :versao, :created_at, :updated_at)
        """), {
            'id': rifa.id,
            'caixinha_id': rifa.caixinha_id,
            'nome': rifa.nome,
            'descricao': rifa.descricao,
            'valor_bilhete': str(rifa.valor_bilhete),
            'quantidade_bilhetes': rifa.quantidade_bilhetes,
            'data_inicio': _db_value('data_inicio', rifa.data_inicio),
            'data_fim': _db_value('data_fim', rifa.data_fim),
            'status': rifa.status,
            'premio': rifa.premio,
            'sorteio_data': _db_value('sorteio_data', rifa.sorteio_data),
            'sorteio_metodo': rifa.sorteio_metodo,
            'sorteio_referencia': rifa.sorteio_referencia,
            'versao': rifa.versao,
            'created_at': _db_value('created_at', rifa.created_at),
            'updated_at': _db_value('updated_at', rifa.updated_at),
        })

    def claim_open(self, conn, caixinha_id, rifa_id, agora, for_sale=False):
        """
        Bump the row version of an ABERTA raffle, taking its write lock.

        With for_sale=True the sale cutoff (data_fim) must not have passed.

        Returns:
            int: the new version, or None if the guard did not match
        """
        sql = """
            UPDATE rifas
            SET versao = versao + 1, updated_at = :agora
            WHERE id = :rifa_id AND caixinha_id = :caixinha_id AND status = :aberta
        """
        if for_sale:
            sql += " AND (data_fim IS NULL OR data_fim >= :agora)"

        result = conn.execute(text(sql), {
            'rifa_id': rifa_id,
            'caixinha_id': caixinha_id,
            'aberta': STATUS_ABERTA,
            'agora': format_timestamp(agora),
        })
        if result.rowcount != 1:
            return None

        return conn.execute(
            text("SELECT versao FROM rifas WHERE id = :rifa_id"), {'rifa_id': rifa_id}
        ).scalar()

    def insert_ticket(self, conn, rifa_id, bilhete, ordem):
        """Create-if-absent ticket row; a duplicate number raises IntegrityError"""
        conn.execute(text("""
            INSERT INTO rifa_bilhetes (rifa_id, numero, membro_id, data_compra, ordem)
            VALUES (:rifa_id, :numero, :membro_id, :data_compra, :ordem)
        """), {
            'rifa_id': rifa_id,
            'numero': bilhete.numero,
            'membro_id': bilhete.membro_id,
            'data_compra': format_timestamp(bilhete.data_compra),
            'ordem': ordem,
        })

    def write_changes(self, conn, caixinha_id, rifa_id, changes, expected_version, agora):
        """Apply editable field changes if the raffle is ABERTA at expected_version"""
        unknown = set(changes) - set(EDITABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Non-editable fields: {', '.join(sorted(unknown))}")

        assignments = [f"{EDITABLE_COLUMNS[key]} = :{key}" for key in sorted(changes)]
        assignments += ["versao = versao + 1", "updated_at = :agora"]

        params = {key: _db_value(EDITABLE_COLUMNS[key], value) for key, value in changes.items()}
        params.update({
            'rifa_id': rifa_id,
            'caixinha_id': caixinha_id,
            'aberta': STATUS_ABERTA,
            'versao': expected_version,
            'agora': format_timestamp(agora),
        })

        result = conn.execute(text(f"""
            UPDATE rifas
            SET {', '.join(assignments)}
            WHERE id = :rifa_id AND caixinha_id = :caixinha_id
              AND status = :aberta AND versao = :versao
        """), params)
        return result.rowcount == 1

    def write_result(self, conn, caixinha_id, rifa_id, resultado, metodo, referencia, agora):
        """Move an ABERTA raffle to FINALIZADA together with its result"""
        result = conn.execute(text("""
            UPDATE rifas
            SET
                status = :finalizada,
                sorteio_resultado = :resultado,
                sorteio_metodo = :metodo,
                sorteio_referencia = :referencia,
                versao = versao + 1,
                updated_at = :agora
            WHERE id = :rifa_id AND caixinha_id = :caixinha_id AND status = :aberta
        """), {
            'finalizada': STATUS_FINALIZADA,
            'aberta': STATUS_ABERTA,
            'resultado': json.dumps(resultado.to_dict(), sort_keys=True),
            'metodo': metodo,
            'referencia': referencia,
            'rifa_id': rifa_id,
            'caixinha_id': caixinha_id,
            'agora': format_timestamp(agora),
        })
        return result.rowcount == 1

    def write_cancel(self, conn, caixinha_id, rifa_id, motivo, agora):
        result = conn.execute(text("""
            UPDATE rifas
            SET
                status = :cancelada,
                motivo_cancelamento = :motivo,
                versao = versao + 1,
                updated_at = :agora
            WHERE id = :rifa_id AND caixinha_id = :caixinha_id AND status = :aberta
        """), {
            'cancelada': STATUS_CANCELADA,
            'aberta': STATUS_ABERTA,
            'motivo': motivo,
            'rifa_id': rifa_id,
            'caixinha_id': caixinha_id,
            'agora': format_timestamp(agora),
        })
        return result.rowcount == 1

    def write_comprovante(self, conn, caixinha_id, rifa_id, comprovante):
        """Attach the certificate reference once; later writes are no-ops"""
        result = conn.execute(text("""
            UPDATE rifas
            SET comprovante = :comprovante
            WHERE id = :rifa_id AND caixinha_id = :caixinha_id
              AND status = :finalizada AND comprovante IS NULL
        """), {
            'comprovante': comprovante,
            'finalizada': STATUS_FINALIZADA,
            'rifa_id': rifa_id,
            'caixinha_id': caixinha_id,
        })
        return result.rowcount == 1

    def delete_unless_finalized(self, conn, caixinha_id, rifa_id):
        exists = conn.execute(text("""
            SELECT 1 FROM rifas
            WHERE id = :rifa_id AND caixinha_id = :caixinha_id AND status <> :finalizada
        """), {
            'rifa_id': rifa_id,
            'caixinha_id': caixinha_id,
            'finalizada': STATUS_FINALIZADA,
        }).fetchone()
        if not exists:
            return False

        conn.execute(text("DELETE FROM rifa_bilhetes WHERE rifa_id = :rifa_id"), {'rifa_id': rifa_id})
        result = conn.execute(text("""
            DELETE FROM rifas
            WHERE id = :rifa_id AND caixinha_id = :caixinha_id AND status <> :finalizada
        """), {
            'rifa_id': rifa_id,
            'caixinha_id': caixinha_id,
            'finalizada': STATUS_FINALIZADA,
        })
        return result.rowcount == 1

    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_rifa(row, bilhetes):
        resultado = None
        if row['sorteio_resultado']:
            resultado = SorteioResultado.from_dict(json.loads(row['sorteio_resultado']))
            resultado.comprovante = row['comprovante']

        return Rifa(
            id=row['id'],
            caixinha_id=row['caixinha_id'],
            nome=row['nome'],
            descricao=row['descricao'],
            valor_bilhete=Decimal(str(row['valor_bilhete'])).quantize(Decimal('0.01')),
            quantidade_bilhetes=int(row['quantidade_bilhetes']),
            bilhetes_vendidos=bilhetes,
            data_inicio=parse_timestamp(row['data_inicio']),
            data_fim=parse_timestamp(row['data_fim']),
            status=row['status'],
            premio=row['premio'],
            sorteio_data=parse_timestamp(row['sorteio_data']),
            sorteio_metodo=row['sorteio_metodo'],
            sorteio_referencia=row['sorteio_referencia'],
            sorteio_resultado=resultado,
            motivo_cancelamento=row['motivo_cancelamento'],
            versao=int(row['versao']),
            created_at=parse_timestamp(row['created_at']),
            updated_at=parse_timestamp(row['updated_at']),
        )
