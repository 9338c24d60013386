# tests/conftest.py
import pytest

from config import TestingConfig
from superips.app import create_app
from superips.db import db
from superips.models import NetworkRange
from superips.services.discovery_service import DiscoveryService
from superips.services.event_bus import EventBus
from superips.utils.network.resolvers import InformacoesAuxiliares


@pytest.fixture(scope="function")
def app():
    """Cria uma app limpa por teste com DB em memória."""
    application = create_app(TestingConfig)

    with application.app_context():
        yield application  # Disponibiliza a app para os testes
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def client(app):
    """Cliente de teste isolado por teste."""
    return app.test_client()


@pytest.fixture(scope="function")
def bus():
    return EventBus(capacidade=500)


@pytest.fixture(scope="function")
def service(app, bus):
    """Orquestrador isolado com a faixa 10.0.11.1-3."""
    return DiscoveryService(
        app,
        event_bus=bus,
        redes=[NetworkRange(range="10.0.11.0/24", start=1, end=3, type="devices")],
    )


@pytest.fixture
def fake_scanner():
    """Fábrica de escanear_portas falso: cada IP responde só nas portas indicadas."""
    def _fabrica(respostas):
        async def _escanear(ip, portas, timeout_ms=1000):
            return sorted(set(portas) & set(respostas.get(ip, ())))
        return _escanear
    return _fabrica


@pytest.fixture
def fake_collector():
    """Fábrica de coletar_informacoes falso: informações por IP (ou vazio)."""
    def _fabrica(por_ip=None):
        por_ip = por_ip or {}

        async def _coletar(ip, portas_abertas, timeouts=None):
            return por_ip.get(ip, InformacoesAuxiliares())
        return _coletar
    return _fabrica
