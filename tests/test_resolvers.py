# tests/test_resolvers.py
import asyncio
from unittest.mock import patch

import pytest

from superips.utils.network import resolvers
from superips.utils.network.mac import extrair_mac, fabricante_por_mac, normalizar_mac
from superips.utils.network.resolvers import (
    InformacoesAuxiliares, TimeoutsResolvedores, coletar_informacoes,
    nome_curto, parse_netbios, primeiro_valor,
)

NMBLOOKUP = """Looking up status of 10.0.11.50
\tPC-FINANCEIRO   <00> -         B <ACTIVE>
\tLOJA            <00> - <GROUP> B <ACTIVE>
\tPC-FINANCEIRO   <20> -         B <ACTIVE>
\tPC-FINANCEIRO   <03> -         B <ACTIVE>
\tMARIA           <03> -         B <ACTIVE>
\tLOJA            <1e> - <GROUP> B <ACTIVE>
\t..__MSBROWSE__. <01> - <GROUP> B <ACTIVE>

\tMAC Address = 00-14-22-AB-CD-EF
"""

NBTSTAT = """
Ethernet:
Node IpAddress: [10.0.11.30] Scope Id: []

           NetBIOS Remote Machine Name Table

       Name               Type         Status
    ---------------------------------------------
    CAIXA-03       <00>  UNIQUE      Registered
    LOJA           <00>  GROUP       Registered
    CAIXA-03       <20>  UNIQUE      Registered
    JOAO           <03>  UNIQUE      Registered

    MAC Address = 08-00-27-12-34-56
"""


def test_parse_nmblookup():
    assert parse_netbios(NMBLOOKUP) == {
        'computador': 'PC-FINANCEIRO',
        'usuario': 'MARIA',
        'workgroup': 'LOJA',
    }


def test_parse_nbtstat():
    assert parse_netbios(NBTSTAT) == {
        'computador': 'CAIXA-03',
        'usuario': 'JOAO',
        'workgroup': 'LOJA',
    }


def test_parse_netbios_without_user():
    saida = "\tSRV-ARQUIVOS    <00> -         B <ACTIVE>\n\tSRV-ARQUIVOS    <03> -         B <ACTIVE>\n"
    resultado = parse_netbios(saida)
    assert resultado['computador'] == 'SRV-ARQUIVOS'
    assert resultado['usuario'] is None


def test_parse_netbios_empty():
    assert parse_netbios('') == {'computador': None, 'usuario': None, 'workgroup': None}


def test_netbios_resolver_adds_mac():
    async def _saida(args, timeout):
        return NMBLOOKUP

    with patch.object(resolvers, '_executar_comando', new=_saida):
        dados = asyncio.run(resolvers.resolver_netbios('10.0.11.50'))

    assert dados['computador'] == 'PC-FINANCEIRO'
    assert dados['mac'] == '00:14:22:AB:CD:EF'


def test_netbios_resolver_no_output():
    async def _nada(args, timeout):
        return None

    with patch.object(resolvers, '_executar_comando', new=_nada):
        assert asyncio.run(resolvers.resolver_netbios('10.0.11.50')) is None


@pytest.mark.parametrize("entrada, esperado", [
    ('aa:bb:cc:dd:ee:ff', 'AA:BB:CC:DD:EE:FF'),
    ('AA-BB-CC-DD-EE-FF', 'AA:BB:CC:DD:EE:FF'),
    ('0:14:22:1:2:3', '00:14:22:01:02:03'),
    ('00:00:00:00:00:00', None),
    ('ff:ff:ff:ff:ff:ff', None),
    ('lixo', None),
    (None, None),
])
def test_normalizar_mac(entrada, esperado):
    assert normalizar_mac(entrada) == esperado


def test_extrair_mac_from_ip_neigh():
    saida = "10.0.11.5 dev eth0 lladdr aa:bb:cc:dd:ee:ff REACHABLE\n"
    assert extrair_mac(saida) == 'AA:BB:CC:DD:EE:FF'


def test_extrair_mac_incomplete_entry():
    assert extrair_mac("10.0.11.9 dev eth0  INCOMPLETE\n") is None


def test_fabricante_por_mac():
    assert fabricante_por_mac('00:50:56:12:34:56') == 'VMware'
    assert fabricante_por_mac('08-00-27-aa-bb-cc') == 'VirtualBox'
    assert fabricante_por_mac('12:34:56:78:9A:BC') is None
    assert fabricante_por_mac(None) is None


def test_resolver_mac_reads_arp_cache():
    async def _saida(args, timeout):
        return "10.0.11.5 dev eth0 lladdr 00:15:5d:01:02:03 STALE\n"

    with patch.object(resolvers, '_executar_comando', new=_saida):
        assert asyncio.run(resolvers.resolver_mac('10.0.11.5')) == '00:15:5D:01:02:03'


def test_resolver_mac_without_entry_and_privileges():
    async def _nada(args, timeout):
        return None

    with patch.object(resolvers, '_executar_comando', new=_nada), \
            patch.object(resolvers, '_tem_privilegios', return_value=False):
        assert asyncio.run(resolvers.resolver_mac('10.0.11.5')) is None


def test_resolver_hostname_failure_is_none():
    with patch.object(resolvers.socket, 'gethostbyaddr', side_effect=OSError("host desconhecido")):
        assert asyncio.run(resolvers.resolver_hostname('10.0.11.5')) is None


def test_primeiro_valor_and_nome_curto():
    assert primeiro_valor(None, '', 'b', 'c') == 'b'
    assert primeiro_valor(None, '') is None
    assert nome_curto('pc-01.loja.local') == 'pc-01'
    assert nome_curto(None) is None


def test_nome_prefers_netbios_then_dns_then_snmp():
    assert InformacoesAuxiliares(nome_netbios='PC-01', hostname='x.loja').nome == 'PC-01'
    assert InformacoesAuxiliares(hostname='pc-02.loja.local').nome == 'pc-02'
    assert InformacoesAuxiliares(snmp={'sys_name': 'sw-core.loja'}).nome == 'sw-core'
    assert InformacoesAuxiliares().nome is None


def test_coletar_informacoes_isolates_failures():
    chamados = []

    async def _hostname(ip, timeout):
        chamados.append('hostname')
        raise RuntimeError("dns quebrado")

    async def _mac(ip, timeout):
        chamados.append('mac')
        return '00:50:56:01:02:03'

    async def _netbios(ip, timeout):
        chamados.append('netbios')
        return {'computador': 'PC-07', 'usuario': 'ANA', 'workgroup': 'LOJA', 'mac': None}

    async def _snmp(ip, community, timeout):
        chamados.append('snmp')
        return None

    with patch.object(resolvers, 'resolver_hostname', new=_hostname), \
            patch.object(resolvers, 'resolver_mac', new=_mac), \
            patch.object(resolvers, 'resolver_netbios', new=_netbios), \
            patch.object(resolvers, 'resolver_snmp', new=_snmp):
        info = asyncio.run(coletar_informacoes('10.0.11.7', [445], TimeoutsResolvedores()))

    # SNMP só roda com a 161 aberta
    assert sorted(chamados) == ['hostname', 'mac', 'netbios']
    assert info.hostname is None
    assert info.mac == '00:50:56:01:02:03'
    assert info.vendor == 'VMware'
    assert info.nome == 'PC-07'
    assert info.usuario == 'ANA'
    assert info.workgroup == 'LOJA'


def test_coletar_informacoes_uses_netbios_mac_as_fallback():
    async def _nada(*args):
        return None

    async def _netbios(ip, timeout):
        return {'computador': 'PC-08', 'usuario': None, 'workgroup': None, 'mac': '08:00:27:00:00:01'}

    with patch.object(resolvers, 'resolver_hostname', new=_nada), \
            patch.object(resolvers, 'resolver_mac', new=_nada), \
            patch.object(resolvers, 'resolver_netbios', new=_netbios):
        info = asyncio.run(coletar_informacoes('10.0.11.8', [139]))

    assert info.mac == '08:00:27:00:00:01'
    assert info.vendor == 'VirtualBox'


# -----------------------
# SNMP
# -----------------------
async def _transporte(endereco, **kwargs):
    return object()


def test_resolver_snmp_maps_system_oids():
    consultados = []

    async def _get_cmd(engine, comunidade, transporte, contexto, *objetos):
        consultados.extend(objetos)
        return None, 0, 0, [
            ('1.3.6.1.2.1.1.5.0', 'sw-core.loja'),
            ('1.3.6.1.2.1.1.1.0', 'Aruba 2530 Switch '),
            ('1.3.6.1.2.1.1.4.0', ''),
        ]

    with patch.object(resolvers.UdpTransportTarget, 'create', new=_transporte), \
            patch.object(resolvers, '_engine', return_value=object()), \
            patch.object(resolvers, 'get_cmd', new=_get_cmd):
        dados = asyncio.run(resolvers.resolver_snmp('10.0.11.2', 'public', 0.5))

    assert len(consultados) == 3
    assert dados == {'sys_name': 'sw-core.loja', 'sys_descr': 'Aruba 2530 Switch', 'sys_contact': None}


@pytest.mark.parametrize("resposta", [
    ('requestTimedOut', 0, 0, []),
    (None, 2, 1, [('1.3.6.1.2.1.1.5.0', 'x')]),
    (None, 0, 0, []),
])
def test_resolver_snmp_agent_errors_are_none(resposta):
    async def _get_cmd(*args):
        return resposta

    with patch.object(resolvers.UdpTransportTarget, 'create', new=_transporte), \
            patch.object(resolvers, '_engine', return_value=object()), \
            patch.object(resolvers, 'get_cmd', new=_get_cmd):
        assert asyncio.run(resolvers.resolver_snmp('10.0.11.2', 'public', 0.5)) is None


def test_resolver_snmp_transport_failure_is_none():
    async def _falha(endereco, **kwargs):
        raise OSError("rede inalcançável")

    with patch.object(resolvers.UdpTransportTarget, 'create', new=_falha):
        assert asyncio.run(resolvers.resolver_snmp('10.0.11.2', 'public', 0.5)) is None


def test_resolver_snmp_without_agent_is_none():
    # comunidade que nenhum agente aceita: a consulta expira sem resposta
    assert asyncio.run(resolvers.resolver_snmp('127.0.0.1', 'superips-sem-agente', 0.5)) is None


# -----------------------
# Comandos externos
# -----------------------
class _ProcessoTravado:
    """Processo que não responde e já terminou quando o kill chega."""

    def __init__(self):
        self.esperou = False

    async def communicate(self):
        await asyncio.sleep(10)

    def kill(self):
        raise ProcessLookupError()

    async def wait(self):
        self.esperou = True
        return 0


def test_executar_comando_timeout_when_process_already_exited():
    processo = _ProcessoTravado()

    async def _criar(*args, **kwargs):
        return processo

    with patch.object(resolvers.shutil, 'which', return_value='/usr/bin/nmblookup'), \
            patch.object(resolvers.asyncio, 'create_subprocess_exec', new=_criar):
        assert asyncio.run(resolvers._executar_comando(['nmblookup', '-A', '10.0.11.5'], 0.05)) is None

    assert processo.esperou is True
