"""
Rifa data model
Raffle aggregate, sold tickets and the embedded draw result
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from utils.provably_fair import HASH_VERSION, format_timestamp, parse_timestamp

STATUS_ABERTA = 'ABERTA'
STATUS_FINALIZADA = 'FINALIZADA'
STATUS_CANCELADA = 'CANCELADA'

FONTE_EXTERNAL = 'external'
FONTE_LOCAL_FALLBACK = 'local-fallback'


def utcnow():
    """Current time in UTC truncated to milliseconds (the stored precision)"""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def _ts(value):
    return format_timestamp(value) if value else None


@dataclass
class Bilhete:
    """One sold ticket: a number bound to a member"""

    numero: int
    membro_id: str
    data_compra: datetime

    def to_dict(self):
        return {
            'numero': self.numero,
            'membroId': self.membro_id,
            'dataCompra': _ts(self.data_compra),
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            numero=int(data['numero']),
            membro_id=str(data['membroId']),
            data_compra=parse_timestamp(data.get('dataCompra')),
        )


@dataclass
class SorteioResultado:
    """Committed outcome of a draw"""

    numero_sorteado: int
    bilhete_vencedor: Optional[Bilhete]
    verificacao_hash: str
    data_sorteio: datetime
    fonte: str
    fonte_ref: Optional[str] = None
    hash_versao: str = HASH_VERSION
    comprovante: Optional[str] = None

    @property
    def data_sorteio_iso(self):
        return format_timestamp(self.data_sorteio)

    def to_dict(self):
        return {
            'numeroSorteado': self.numero_sorteado,
            'bilheteVencedor': self.bilhete_vencedor.to_dict() if self.bilhete_vencedor else None,
            'verificacaoHash': self.verificacao_hash,
            'dataSorteio': self.data_sorteio_iso,
            'fonte': self.fonte,
            'fonteRef': self.fonte_ref,
            'hashVersao': self.hash_versao,
            'comprovante': self.comprovante,
        }

    @classmethod
    def from_dict(cls, data):
        vencedor = data.get('bilheteVencedor')
        return cls(
            numero_sorteado=int(data['numeroSorteado']),
            bilhete_vencedor=Bilhete.from_dict(vencedor) if vencedor else None,
            verificacao_hash=data['verificacaoHash'],
            data_sorteio=parse_timestamp(data['dataSorteio']),
            fonte=data.get('fonte', FONTE_EXTERNAL),
            fonte_ref=data.get('fonteRef'),
            hash_versao=data.get('hashVersao', HASH_VERSION),
            comprovante=data.get('comprovante'),
        )


@dataclass
class Rifa:
    """A numbered-ticket raffle owned by a caixinha"""

    id: str
    caixinha_id: str
    nome: str
    valor_bilhete: Decimal
    quantidade_bilhetes: int
    descricao: Optional[str] = None
    bilhetes_vendidos: List[Bilhete] = field(default_factory=list)
    data_inicio: Optional[datetime] = None
    data_fim: Optional[datetime] = None
    status: str = STATUS_ABERTA
    premio: Optional[str] = None
    sorteio_data: Optional[datetime] = None
    sorteio_metodo: Optional[str] = None
    sorteio_referencia: Optional[str] = None
    sorteio_resultado: Optional[SorteioResultado] = None
    motivo_cancelamento: Optional[str] = None
    versao: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_open(self):
        return self.status == STATUS_ABERTA

    @property
    def numeros_vendidos(self):
        return {b.numero for b in self.bilhetes_vendidos}

    def find_bilhete(self, numero):
        for bilhete in self.bilhetes_vendidos:
            if bilhete.numero == numero:
                return bilhete
        return None

    def accepts_sales_at(self, when):
        """True if tickets can be sold at `when` (open and not past the cutoff)"""
        if not self.is_open:
            return False
        return self.data_fim is None or when <= self.data_fim

    def to_dict(self):
        return {
            'id': self.id,
            'caixinhaId': self.caixinha_id,
            'nome': self.nome,
            'descricao': self.descricao,
            'valorBilhete': str(self.valor_bilhete),
            'quantidadeBilhetes': self.quantidade_bilhetes,
            'bilhetesVendidos': [b.to_dict() for b in self.bilhetes_vendidos],
            'dataInicio': _ts(self.data_inicio),
            'dataFim': _ts(self.data_fim),
            'status': self.status,
            'premio': self.premio,
            'sorteioData': _ts(self.sorteio_data),
            'sorteioMetodo': self.sorteio_metodo,
            'sorteioReferencia': self.sorteio_referencia,
            'sorteioResultado': self.sorteio_resultado.to_dict() if self.sorteio_resultado else None,
            'motivoCancelamento': self.motivo_cancelamento,
            'versao': self.versao,
            'createdAt': _ts(self.created_at),
            'updatedAt': _ts(self.updated_at),
        }
