"""
Service facade and schema tests
"""

import asyncio

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from conftest import CAIXINHA
from rifa_system.database import setup_rifa_database, verify_rifa_schema
from rifa_system.errors import InvalidRifaData, RifaError, TicketAlreadySold


def test_full_raffle_flow(service, http):
    rifa = service.create(CAIXINHA, {
        'nome': "Rifa do churrasco",
        'valorBilhete': "10.50",
        'quantidadeBilhetes': 5,
        'premio': "Kit churrasco",
        'dataFim': "2026-03-20T00:00:00Z",
    })
    assert rifa['status'] == "ABERTA"
    assert rifa['valorBilhete'] == "10.50"
    assert rifa['dataFim'] == "2026-03-20T00:00:00.000Z"

    bilhete = service.sell(CAIXINHA, rifa['id'], 4, "membro-a")
    assert bilhete == {'numero': 4, 'membroId': "membro-a", 'dataCompra': "2026-03-10T12:00:00.000Z"}

    http.random_org(4)
    resultado = asyncio.run(service.draw(CAIXINHA, rifa['id'], "RANDOM_ORG"))
    assert resultado['numeroSorteado'] == 4
    assert resultado['bilheteVencedor']['membroId'] == "membro-a"
    assert resultado['comprovante'].startswith("/api/comprovantes/")

    verificacao = asyncio.run(service.verify(CAIXINHA, rifa['id']))
    assert verificacao['integridadeOk'] is True

    documento = service.generate_certificate(CAIXINHA, rifa['id'])
    assert documento['url'] == resultado['comprovante']

    stored = service.get_by_id(CAIXINHA, rifa['id'])
    assert stored['status'] == "FINALIZADA"
    assert stored['sorteioResultado']['verificacaoHash'] == resultado['verificacaoHash']
    assert [r['id'] for r in service.list(CAIXINHA)] == [rifa['id']]


def test_errors_carry_code_and_retryable(service):
    rifa = service.create(CAIXINHA, {'nome': "Rifa", 'valorBilhete': 2, 'quantidadeBilhetes': 3})
    service.sell(CAIXINHA, rifa['id'], 1, "membro-a")

    with pytest.raises(TicketAlreadySold) as excinfo:
        service.sell(CAIXINHA, rifa['id'], 1, "membro-b")

    body = excinfo.value.to_dict()
    assert body['error'] == "ticket_already_sold"
    assert body['retryable'] is True
    assert body['details']['numero'] == 1


def test_create_requires_core_fields(service):
    with pytest.raises(InvalidRifaData) as excinfo:
        service.create(CAIXINHA, {'valorBilhete': 2, 'quantidadeBilhetes': 3})

    assert isinstance(excinfo.value, RifaError)
    assert excinfo.value.details['field'] == 'nome'


def test_update_cancel_and_delete(service):
    rifa = service.create(CAIXINHA, {'nome': "Rifa", 'valorBilhete': 2, 'quantidadeBilhetes': 3})

    updated = service.update(CAIXINHA, rifa['id'], {'descricao': "Nova descricao"}, expected_version=0)
    assert updated['descricao'] == "Nova descricao"
    assert updated['versao'] == 1

    cancelled = service.cancel(CAIXINHA, rifa['id'], "sem interessados")
    assert cancelled['status'] == "CANCELADA"
    assert cancelled['motivoCancelamento'] == "sem interessados"

    assert service.delete(CAIXINHA, rifa['id']) is True
    assert service.list(CAIXINHA) == []


def test_schema_setup_is_repeatable(engine):
    assert setup_rifa_database(engine) is True
    assert verify_rifa_schema(engine) == {'rifas': True, 'rifa_bilhetes': True}


def test_finalized_status_requires_result(engine, make_rifa):
    rifa = make_rifa()

    with pytest.raises(IntegrityError):
        with engine.begin() as conn:
            conn.execute(text("UPDATE rifas SET status = 'FINALIZADA' WHERE id = :id"), {'id': rifa.id})
