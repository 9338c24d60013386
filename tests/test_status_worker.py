# tests/test_status_worker.py
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from config import TestingConfig
from superips.app import create_app
from superips.db import db
from superips.models import Device, PingHistory, Vlan
from superips.services.event_bus import EVENTO_STATUS, EventBus
from superips.services.status_worker import (
    StatusWorker, _eh_erro_transitorio, executar_com_retry,
)


def _bloqueado():
    return OperationalError("UPDATE devices SET status = 1", {}, Exception("database is locked"))


def test_retry_stops_at_cap_with_growing_delays():
    chamadas, esperas = [], []

    def _operacao():
        chamadas.append(1)
        raise _bloqueado()

    resultado = executar_com_retry(_operacao, dormir=esperas.append, aleatorio=lambda: 1.0)

    assert resultado is None
    assert len(chamadas) == 15
    # não dorme depois da última tentativa
    assert len(esperas) == 14
    assert esperas[0] == pytest.approx(0.1)
    assert esperas[1] == pytest.approx(0.2)
    assert all(b > a for a, b in zip(esperas, esperas[1:]))


def test_retry_jitter_stays_in_range():
    esperas = []

    def _operacao():
        raise _bloqueado()

    executar_com_retry(_operacao, tentativas=2, dormir=esperas.append, aleatorio=lambda: 0.0)
    assert esperas == [pytest.approx(0.05)]


def test_retry_succeeds_after_transient_errors():
    tentativas = iter([_bloqueado(), _bloqueado(), None])
    esperas = []

    def _operacao():
        erro = next(tentativas)
        if erro:
            raise erro
        return 'ok'

    assert executar_com_retry(_operacao, dormir=esperas.append, aleatorio=lambda: 0.5) == 'ok'
    assert len(esperas) == 2


def test_non_transient_error_fails_fast():
    chamadas = []

    def _operacao():
        chamadas.append(1)
        raise IntegrityError("INSERT INTO devices", {}, Exception("UNIQUE constraint failed"))

    assert executar_com_retry(_operacao, dormir=lambda s: None) is None
    assert len(chamadas) == 1


@pytest.mark.parametrize("erro, transitorio", [
    (OperationalError("x", {}, Exception("database is locked")), True),
    (OperationalError("x", {}, Exception("SQLITE_BUSY")), True),
    (OperationalError("x", {}, Exception("connection timeout expired")), True),
    (OperationalError("x", {}, Exception("no such table: devices")), False),
    (OperationalError("x", {}, Exception("boom"), connection_invalidated=True), True),
    (IntegrityError("x", {}, Exception("UNIQUE constraint failed")), False),
])
def test_eh_erro_transitorio(erro, transitorio):
    assert _eh_erro_transitorio(erro) is transitorio


@pytest.fixture
def file_app(tmp_path):
    class _FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'worker.db'}"

    application = create_app(_FileConfig)
    with application.app_context():
        yield application
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_worker_updates_status_and_history(file_app, fake_scanner):
    db.session.add_all([
        Device(ip='10.0.11.10', status=0),
        Device(ip='10.0.11.11', status=1),
        Vlan(ip='10.0.12.20', status=0),
    ])
    db.session.commit()

    bus = EventBus()
    assinatura = bus.assinar()
    worker = StatusWorker(file_app.config['SQLALCHEMY_DATABASE_URI'], event_bus=bus, timeout_ms=100)
    respostas = {'10.0.11.10': {80}, '10.0.12.20': {22}}

    with patch('superips.services.status_worker.escanear_portas', new=fake_scanner(respostas)):
        thread = worker.iniciar()
        thread.join(timeout=30)

    assert not thread.is_alive()
    db.session.expire_all()
    status = {d.ip: d.status for d in Device.query.all()}
    assert status == {'10.0.11.10': 1, '10.0.11.11': 0}
    assert Vlan.query.filter_by(ip='10.0.12.20').first().status == 1

    historico = PingHistory.query.order_by(PingHistory.id).all()
    assert len(historico) == 3
    por_ip = {h.ip: h for h in historico}
    assert por_ip['10.0.11.10'].status == 1
    assert por_ip['10.0.11.10'].response_time is not None
    assert por_ip['10.0.11.11'].response_time is None
    assert por_ip['10.0.12.20'].device_id is None

    eventos = [d for e, d in assinatura.pendentes() if e == EVENTO_STATUS]
    assert len(eventos) == 3
    assert {e['table'] for e in eventos} == {'devices', 'vlan'}


def test_worker_executar_returns_count(file_app, fake_scanner):
    db.session.add(Device(ip='10.0.11.12', status=1))
    db.session.commit()

    worker = StatusWorker(file_app.config['SQLALCHEMY_DATABASE_URI'], event_bus=EventBus(), timeout_ms=100)
    with patch('superips.services.status_worker.escanear_portas', new=fake_scanner({})):
        assert worker.executar() == 1

    db.session.expire_all()
    assert Device.query.first().status == 0
