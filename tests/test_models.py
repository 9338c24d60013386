# tests/test_models.py
import threading

import pytest

from superips.models import DiscoveryStatus, NetworkRange
from superips.models.NetworkRange import REDES_PADRAO, carregar_redes
from superips.services.settings_service import (
    PADROES, ConfiguracoesDescoberta, atualizar_configuracoes, carregar_configuracoes,
)


def test_network_range_expands_addresses():
    rede = NetworkRange(range='10.0.11.0/24', start=1, end=3)
    assert rede.base == '10.0.11'
    assert rede.enderecos() == ['10.0.11.1', '10.0.11.2', '10.0.11.3']
    assert len(rede) == 3
    assert rede.tabela == 'devices'


def test_network_range_types_map_to_tables():
    assert NetworkRange(range='10.0.12', type='vlan').tabela == 'vlan'
    assert NetworkRange(range='10.0.13', type='coletores').tabela == 'vlan'


@pytest.mark.parametrize("dados", [
    {'range': '10.0.11', 'start': 10, 'end': 5},
    {'range': '10.0.11', 'end': 300},
    {'range': '10.0.11', 'type': 'tarefas'},
    {'range': 'rede-invalida'},
])
def test_network_range_validation(dados):
    with pytest.raises(ValueError):
        NetworkRange.from_dict(dados)


def test_carregar_redes_from_yaml(tmp_path):
    arquivo = tmp_path / 'redes.yaml'
    arquivo.write_text(
        "- range: '192.168.100'\n  start: 10\n  end: 20\n  type: vlan\n"
        "- range: 'quebrada'\n",
        encoding='utf-8',
    )
    redes = carregar_redes(arquivo=str(arquivo))
    assert redes == [NetworkRange(range='192.168.100', start=10, end=20, type='vlan')]


def test_carregar_redes_defaults_and_explicit(tmp_path):
    assert len(carregar_redes(arquivo=str(tmp_path / 'nao-existe.yaml'))) == len(REDES_PADRAO)
    assert carregar_redes([]) == []


def test_discovery_status_lifecycle():
    status = DiscoveryStatus()
    assert status.tentar_iniciar() is True
    assert status.tentar_iniciar() is False
    status.registrar_progresso(50)
    status.registrar_progresso(30)
    assert status.progress == 50
    status.registrar_dispositivo()
    status.finalizar()

    snapshot = status.snapshot()
    assert snapshot['isRunning'] is False
    assert snapshot['progress'] == 100
    assert snapshot['foundDevices'] == 1
    assert snapshot['lastRun'] is not None

    # nova execução zera os contadores
    assert status.tentar_iniciar() is True
    assert status.progress == 0
    assert status.found_devices == 0


def test_discovery_status_compare_and_set_under_threads():
    status = DiscoveryStatus()
    resultados = []
    barreira = threading.Barrier(8)

    def _tentar():
        barreira.wait()
        resultados.append(status.tentar_iniciar())

    threads = [threading.Thread(target=_tentar) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert resultados.count(True) == 1


def test_settings_defaults_are_seeded(app):
    configuracoes = carregar_configuracoes()
    assert configuracoes == ConfiguracoesDescoberta()
    assert configuracoes.to_dict() == PADROES
    assert configuracoes.lote_atualizacao == 5


def test_refresh_batch_is_never_zero(app):
    configuracoes = atualizar_configuracoes({'batch_size': 3})
    assert configuracoes.lote_varredura == 3
    assert configuracoes.lote_atualizacao == 1
