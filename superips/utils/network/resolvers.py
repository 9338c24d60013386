"""
Resolvedores auxiliares de informação de um host: DNS reverso, ARP/MAC,
NetBIOS e SNMP.

Cada resolvedor é independente, tem o próprio timeout e devolve None quando a
informação não está disponível; nenhum deles levanta exceção para o chamador.
`coletar_informacoes` roda os aplicáveis em paralelo e junta o que vier.
"""
import asyncio
import logging
import os
import re
import shutil
import socket
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from pysnmp.hlapi.v3arch.asyncio import (
    get_cmd,
    SnmpEngine, CommunityData,
    UdpTransportTarget, ContextData,
    ObjectType, ObjectIdentity,
)
from scapy.all import getmacbyip

from superips.utils.network.mac import extrair_mac, fabricante_por_mac

logger = logging.getLogger(__name__)

OID_SYS_DESCR = '1.3.6.1.2.1.1.1.0'
OID_SYS_CONTACT = '1.3.6.1.2.1.1.4.0'
OID_SYS_NAME = '1.3.6.1.2.1.1.5.0'

PORTAS_NETBIOS = {139, 445}
PORTA_SNMP = 161


@dataclass
class InformacoesAuxiliares:
    hostname: Optional[str] = None
    nome_netbios: Optional[str] = None
    usuario: Optional[str] = None
    workgroup: Optional[str] = None
    mac: Optional[str] = None
    vendor: Optional[str] = None
    snmp: Optional[Dict[str, Optional[str]]] = None

    @property
    def nome(self) -> Optional[str]:
        """Melhor nome de exibição: NetBIOS, depois DNS sem domínio, depois sysName."""
        sys_name = (self.snmp or {}).get('sys_name')
        return primeiro_valor(self.nome_netbios, nome_curto(self.hostname), nome_curto(sys_name))


@dataclass(frozen=True)
class TimeoutsResolvedores:
    dns: float = 2.0
    arp: float = 4.0
    netbios: float = 6.0
    snmp: float = 2.0
    snmp_community: str = 'public'


def primeiro_valor(*valores):
    """Primeiro valor não vazio; falhas (None, '') são ignoradas."""
    for valor in valores:
        if valor:
            return valor
    return None


def nome_curto(hostname: Optional[str]) -> Optional[str]:
    if not hostname:
        return None
    return hostname.split('.')[0] or None


def _tem_privilegios() -> bool:
    if os.name == "nt":
        try:
            import ctypes
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


async def _executar_comando(args: List[str], timeout: float) -> Optional[str]:
    """Roda um comando externo sem bloquear o loop. None se não existir, falhar ou expirar."""
    if not shutil.which(args[0]):
        return None
    try:
        processo = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug(f"Falha ao executar {args[0]}: {e}")
        return None
    try:
        stdout, _ = await asyncio.wait_for(processo.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            processo.kill()
        except ProcessLookupError:
            pass  # terminou junto com o timeout
        await processo.wait()
        logger.debug(f"{args[0]} expirou após {timeout}s")
        return None
    return stdout.decode('utf-8', errors='ignore')


# -----------------------
# DNS reverso
# -----------------------
async def resolver_hostname(ip: str, timeout: float = 2.0) -> Optional[str]:
    try:
        hostname, _, _ = await asyncio.wait_for(
            asyncio.to_thread(socket.gethostbyaddr, ip),
            timeout=timeout,
        )
    except (OSError, asyncio.TimeoutError):
        return None
    if not hostname or hostname == ip:
        return None
    return hostname


# -----------------------
# ARP / MAC
# -----------------------
def _comandos_arp(ip: str) -> List[List[str]]:
    if os.name == "nt":
        return [["arp", "-a", ip]]
    return [["ip", "neigh", "show", ip], ["arp", "-n", ip]]


async def resolver_mac(ip: str, timeout: float = 4.0) -> Optional[str]:
    """Consulta a tabela ARP local; com privilégios, faz um ARP ativo via scapy."""
    for comando in _comandos_arp(ip):
        saida = await _executar_comando(comando, timeout)
        mac = extrair_mac(saida) if saida else None
        if mac:
            return mac

    if not _tem_privilegios():
        return None
    try:
        mac = await asyncio.wait_for(asyncio.to_thread(getmacbyip, ip), timeout=timeout)
    except Exception as e:
        # scapy levanta Scapy_Exception além de erros de socket
        logger.debug(f"ARP ativo falhou para {ip}: {e}")
        return None
    return extrair_mac(mac) if mac else None


# -----------------------
# NetBIOS
# -----------------------
NETBIOS_LINHA = re.compile(
    r'^\s*(?P<nome>[^\s<]+(?:\s[^\s<]+)*?)\s+<(?P<sufixo>[0-9A-Fa-f]{2})>\s*-?\s*(?P<resto>.*)$'
)


def parse_netbios(saida: str) -> Dict[str, Optional[str]]:
    """
    Interpreta a tabela de nomes do nmblookup/nbtstat.
    <00> único = computador, <00> GROUP = workgroup, <03> único = usuário logado
    (descartando o próprio nome do computador, que também se anuncia em <03>).
    """
    computador = workgroup = None
    candidatos_usuario = []

    for linha in (saida or '').splitlines():
        casado = NETBIOS_LINHA.match(linha)
        if not casado:
            continue
        nome = casado.group('nome').strip()
        sufixo = casado.group('sufixo').upper()
        grupo = 'GROUP' in casado.group('resto').upper()
        if '__MSBROWSE__' in nome or nome.startswith('__') or nome == '*':
            continue
        if sufixo == '00':
            if grupo:
                workgroup = workgroup or nome
            else:
                computador = computador or nome
        elif sufixo == '03' and not grupo:
            candidatos_usuario.append(nome)

    usuario = next(
        (n for n in candidatos_usuario
         if not computador or n.upper() != computador.upper()),
        None,
    )
    return {'computador': computador, 'usuario': usuario, 'workgroup': workgroup}


async def resolver_netbios(ip: str, timeout: float = 6.0) -> Optional[Dict[str, Optional[str]]]:
    comando = ["nbtstat", "-A", ip] if os.name == "nt" else ["nmblookup", "-A", ip]
    saida = await _executar_comando(comando, timeout)
    if not saida:
        return None
    dados = parse_netbios(saida)
    if not any(dados.values()):
        return None
    dados['mac'] = extrair_mac(saida)
    return dados


# -----------------------
# SNMP
# -----------------------
_snmp_engine: Optional[SnmpEngine] = None


def _engine() -> SnmpEngine:
    global _snmp_engine
    if _snmp_engine is None:
        _snmp_engine = SnmpEngine()
    return _snmp_engine


async def resolver_snmp(ip: str, community: str = 'public',
                        timeout: float = 2.0) -> Optional[Dict[str, Optional[str]]]:
    """GET de sysName, sysDescr e sysContact. Qualquer falha = indisponível."""
    try:
        transporte = await UdpTransportTarget.create((ip, PORTA_SNMP), timeout=timeout, retries=0)
        error_indication, error_status, _, var_binds = await asyncio.wait_for(
            get_cmd(
                _engine(),
                CommunityData(community, mpModel=1),
                transporte,
                ContextData(),
                ObjectType(ObjectIdentity(OID_SYS_NAME)),
                ObjectType(ObjectIdentity(OID_SYS_DESCR)),
                ObjectType(ObjectIdentity(OID_SYS_CONTACT)),
            ),
            timeout=timeout + 1,
        )
    except Exception as e:
        logger.debug(f"SNMP indisponível em {ip}: {e}")
        return None

    if error_indication or error_status or not var_binds:
        return None

    valores = [str(valor).strip() or None for _, valor in var_binds]
    valores += [None] * (3 - len(valores))
    return {'sys_name': valores[0], 'sys_descr': valores[1], 'sys_contact': valores[2]}


# -----------------------
# Coleta combinada
# -----------------------
async def coletar_informacoes(ip: str, portas_abertas: Iterable[int],
                              timeouts: TimeoutsResolvedores = TimeoutsResolvedores()) -> InformacoesAuxiliares:
    """
    Roda os resolvedores aplicáveis em paralelo. A falha de um não impede os
    outros; o resultado contém o que foi possível obter.
    """
    portas = set(portas_abertas or [])
    tarefas = {
        'hostname': resolver_hostname(ip, timeouts.dns),
        'mac': resolver_mac(ip, timeouts.arp),
    }
    if portas & PORTAS_NETBIOS:
        tarefas['netbios'] = resolver_netbios(ip, timeouts.netbios)
    if PORTA_SNMP in portas:
        tarefas['snmp'] = resolver_snmp(ip, timeouts.snmp_community, timeouts.snmp)

    resultados = await asyncio.gather(*tarefas.values(), return_exceptions=True)
    coletado = {}
    for chave, resultado in zip(tarefas, resultados):
        if isinstance(resultado, BaseException):
            logger.debug(f"Resolvedor {chave} falhou para {ip}: {resultado!r}")
            resultado = None
        coletado[chave] = resultado

    netbios = coletado.get('netbios') or {}
    mac = primeiro_valor(coletado.get('mac'), netbios.get('mac'))
    return InformacoesAuxiliares(
        hostname=coletado.get('hostname'),
        nome_netbios=netbios.get('computador'),
        usuario=netbios.get('usuario'),
        workgroup=netbios.get('workgroup'),
        mac=mac,
        vendor=fabricante_por_mac(mac),
        snmp=coletado.get('snmp'),
    )
