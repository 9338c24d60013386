# superips/services/classifier.py
"""
Classificação de dispositivos por pontuação ponderada.

Cada tipo tem uma assinatura (portas, padrões de hostname, fabricantes e
faixas do último octeto). A pontuação soma:
    portas     0.4 x fração das portas da assinatura encontradas
                   (peso cheio se uma porta exclusiva do tipo estiver aberta)
    hostname   0.3 se algum padrão aparece no hostname/nome (padrões curtos
                   só como palavra inteira, ex.: "gw" casa "gw-01" e não "sgw")
    faixa IP   0.2 se o último octeto está em uma das faixas do tipo
    fabricante 0.1 se o fabricante do MAC está na lista do tipo
O maior valor vence; se não passar do limiar o resultado é "Dispositivo".
Faixas de PDV e impressoras fiscais são regra de endereçamento da rede e
valem antes da pontuação. PDV não tem portas próprias, então fora
da faixa não disputa as portas do Windows com Computador.
"""
import ipaddress
import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

from superips.models.Device import TIPO_PADRAO, SETOR_PADRAO

logger = logging.getLogger(__name__)

Faixa = Tuple[int, int]

# Padrões curtos só valem como palavra do hostname (ou seguidos de número)
TAMANHO_MINIMO_SUBSTRING = 5
_SEPARADORES = re.compile(r"[\s.\-_]+")


@dataclass(frozen=True)
class Assinatura:
    tipo: str
    portas: FrozenSet[int] = frozenset()
    portas_exclusivas: FrozenSet[int] = frozenset()
    hostnames: Tuple[str, ...] = ()
    fabricantes: Tuple[str, ...] = ()
    faixas_ip: Tuple[Faixa, ...] = ()


@dataclass(frozen=True)
class PesosClassificacao:
    portas: float = 0.4
    hostname: float = 0.3
    faixa_ip: float = 0.2
    fabricante: float = 0.1
    limiar: float = 0.3


# Ordem importa: em empate vence a assinatura que aparece primeiro.
ASSINATURAS: Tuple[Assinatura, ...] = (
    Assinatura(
        tipo='Impressora Fiscal',
        portas=frozenset({9100, 10001, 10002}),
        hostnames=('fiscal', 'ecf', 'bematech', 'elgin', 'daruma', 'sat'),
        fabricantes=('Bematech', 'Elgin', 'Daruma', 'Epson'),
        faixas_ip=((201, 220),),
    ),
    Assinatura(
        tipo='PDV',
        hostnames=('pdv', 'caixa', 'cx', 'checkout'),
        faixas_ip=((101, 150),),
    ),
    Assinatura(
        tipo='Impressora',
        portas=frozenset({9100, 631, 515, 161}),
        portas_exclusivas=frozenset({9100, 515}),
        hostnames=('print', 'impressora', 'npi', 'brw', 'lexmark', 'ricoh', 'kyocera', 'xerox', 'canon'),
        fabricantes=('HP', 'Brother', 'Lexmark', 'Ricoh', 'Kyocera', 'Xerox', 'Canon', 'Samsung'),
    ),
    Assinatura(
        tipo='Roteador',
        portas=frozenset({53, 80, 443, 23, 161}),
        hostnames=('router', 'roteador', 'gateway', 'gw', 'mikrotik', 'tplink', 'dlink'),
        fabricantes=('TP-Link', 'D-Link', 'Cisco', 'MikroTik', 'Ubiquiti'),
        faixas_ip=((1, 1), (254, 254)),
    ),
    Assinatura(
        tipo='Switch',
        portas=frozenset({22, 23, 80, 161}),
        hostnames=('switch', 'sw', 'core', 'aruba'),
        fabricantes=('Cisco', 'HP', 'Aruba', 'D-Link', 'TP-Link'),
    ),
    Assinatura(
        tipo='Servidor',
        portas=frozenset({21, 22, 25, 53, 110, 143, 3306, 5432}),
        hostnames=('srv', 'server', 'servidor', 'db', 'dc', 'ad'),
        fabricantes=('VMware', 'Hyper-V', 'VirtualBox', 'Dell'),
    ),
    Assinatura(
        tipo='Camera IP',
        portas=frozenset({554, 80, 8080}),
        portas_exclusivas=frozenset({554}),
        hostnames=('cam', 'camera', 'dvr', 'nvr', 'hikvision', 'intelbras', 'dahua'),
        fabricantes=('Hikvision', 'Intelbras', 'Dahua'),
    ),
    Assinatura(
        tipo='Computador',
        portas=frozenset({135, 139, 445, 3389}),
        hostnames=('pc', 'desktop', 'notebook', 'note', 'estacao', 'ws'),
        fabricantes=('Dell', 'HP', 'Lenovo', 'Apple'),
    ),
)

# Regras de endereçamento que dispensam a pontuação
FAIXAS_PRIORITARIAS: Tuple[Tuple[Faixa, str], ...] = (
    ((101, 150), 'PDV'),
    ((201, 220), 'Impressora Fiscal'),
)


def ultimo_octeto(ip: str) -> Optional[int]:
    try:
        return int(ipaddress.IPv4Address(ip.strip())) & 0xFF
    except (ipaddress.AddressValueError, AttributeError, ValueError):
        return None


def _na_faixa(octeto: Optional[int], faixas: Iterable[Faixa]) -> bool:
    return octeto is not None and any(inicio <= octeto <= fim for inicio, fim in faixas)


def _casa_nome(padrao: str, texto: str, tokens: Sequence[str]) -> bool:
    if len(padrao) >= TAMANHO_MINIMO_SUBSTRING:
        return padrao in texto
    tamanho = len(padrao)
    return any(
        t == padrao or (t.startswith(padrao) and t[tamanho].isdigit())
        for t in tokens
    )


class DeviceClassifier:

    def __init__(self, assinaturas: Sequence[Assinatura] = ASSINATURAS,
                 pesos: PesosClassificacao = PesosClassificacao(),
                 faixas_prioritarias=FAIXAS_PRIORITARIAS):
        self.assinaturas = list(assinaturas)
        self.pesos = pesos
        self.faixas_prioritarias = faixas_prioritarias

    def pontuar(self, assinatura: Assinatura, ip: str, portas: FrozenSet[int],
                texto_nome: str, fabricante: str) -> float:
        pesos = self.pesos
        pontuacao = 0.0

        if assinatura.portas:
            if portas & assinatura.portas_exclusivas:
                pontuacao += pesos.portas
            else:
                encontradas = len(portas & assinatura.portas)
                pontuacao += pesos.portas * encontradas / len(assinatura.portas)

        tokens = [t for t in _SEPARADORES.split(texto_nome) if t]
        if texto_nome and any(_casa_nome(p, texto_nome, tokens) for p in assinatura.hostnames):
            pontuacao += pesos.hostname

        if _na_faixa(ultimo_octeto(ip), assinatura.faixas_ip):
            pontuacao += pesos.faixa_ip

        if fabricante and any(f.lower() in fabricante for f in assinatura.fabricantes):
            pontuacao += pesos.fabricante

        return pontuacao

    def pontuacoes(self, ip: str, open_ports: Iterable[int] = (), hostname: Optional[str] = None,
                   name: Optional[str] = None, mac: Optional[str] = None,
                   vendor: Optional[str] = None) -> Dict[str, float]:
        portas = frozenset(int(p) for p in (open_ports or ()))
        texto_nome = ' '.join(v for v in (hostname, name) if v and v != ip).lower()
        fabricante = (vendor or '').lower()
        return {
            a.tipo: self.pontuar(a, ip, portas, texto_nome, fabricante)
            for a in self.assinaturas
        }

    def classificar(self, ip: str, open_ports: Iterable[int] = (), hostname: Optional[str] = None,
                    name: Optional[str] = None, mac: Optional[str] = None,
                    vendor: Optional[str] = None) -> str:
        octeto = ultimo_octeto(ip)
        for faixa, tipo in self.faixas_prioritarias:
            if _na_faixa(octeto, (faixa,)):
                return tipo

        melhor_tipo, melhor = TIPO_PADRAO, 0.0
        for tipo, pontuacao in self.pontuacoes(ip, open_ports, hostname, name, mac, vendor).items():
            if pontuacao > melhor:
                melhor_tipo, melhor = tipo, pontuacao

        if melhor <= self.pesos.limiar:
            return TIPO_PADRAO
        logger.debug(f"{ip} classificado como {melhor_tipo} ({melhor:.2f})")
        return melhor_tipo


# -----------------------
# SETORES
# -----------------------
@dataclass(frozen=True)
class RegraSetor:
    prefixo: str
    setor: str
    faixa: Faixa = (0, 255)


REGRAS_SETOR: Tuple[RegraSetor, ...] = (
    RegraSetor('10.0.11.', 'TI', (1, 20)),
    RegraSetor('10.0.11.', 'Administração', (21, 60)),
    RegraSetor('10.0.11.', 'Vendas', (61, 100)),
    RegraSetor('10.0.11.', 'Caixas', (101, 150)),
    RegraSetor('10.0.11.', 'Estoque', (151, 200)),
    RegraSetor('10.0.11.', 'Caixas', (201, 220)),
    RegraSetor('10.0.11.', 'TI', (221, 254)),
    RegraSetor('10.0.12.', 'VLAN Corporativa'),
    RegraSetor('10.0.13.', 'Estoque'),
    RegraSetor('192.168.100.', 'Rede Convidados'),
)


def detectar_setor(ip: str, regras: Sequence[RegraSetor] = REGRAS_SETOR) -> str:
    """Setor a partir do IP apenas (sem rede, sem banco)."""
    octeto = ultimo_octeto(ip)
    if octeto is None:
        return SETOR_PADRAO
    ip = ip.strip()
    for regra in regras:
        if ip.startswith(regra.prefixo) and _na_faixa(octeto, (regra.faixa,)):
            return regra.setor
    return SETOR_PADRAO
