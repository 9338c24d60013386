import ipaddress
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import yaml

logger = logging.getLogger(__name__)

# type da faixa -> tabela de destino
TABELA_POR_TIPO = {
    'devices': 'devices',
    'vlan': 'vlan',
    'coletores': 'vlan',
}

REDES_PADRAO = [
    {'range': '10.0.11', 'start': 1, 'end': 254, 'type': 'devices'},
    {'range': '10.0.12', 'start': 1, 'end': 254, 'type': 'vlan'},
]


@dataclass(frozen=True)
class NetworkRange:
    """Faixa de rede configurada: `range` + último octeto de `start` a `end`."""
    range: str
    start: int = 1
    end: int = 254
    type: str = 'devices'

    def __post_init__(self):
        if not 0 <= self.start <= self.end <= 255:
            raise ValueError(f"Limites inválidos para a faixa {self.range}: {self.start}-{self.end}")
        if self.type not in TABELA_POR_TIPO:
            raise ValueError(f"Tipo de faixa desconhecido: {self.type}")
        # valida a base
        ipaddress.ip_address(f"{self.base}.0")

    @property
    def base(self) -> str:
        """Três primeiros octetos, aceitando '10.0.11' ou '10.0.11.0/24'."""
        texto = self.range.strip()
        if '/' in texto:
            rede = ipaddress.ip_network(texto, strict=False)
            return '.'.join(str(rede.network_address).split('.')[:3])
        partes = texto.split('.')
        return '.'.join(partes[:3])

    @property
    def tabela(self) -> str:
        return TABELA_POR_TIPO[self.type]

    def enderecos(self) -> List[str]:
        return [f"{self.base}.{octeto}" for octeto in range(self.start, self.end + 1)]

    def __len__(self):
        return self.end - self.start + 1

    @classmethod
    def from_dict(cls, dados: Dict[str, Any]) -> "NetworkRange":
        return cls(
            range=str(dados['range']),
            start=int(dados.get('start', 1)),
            end=int(dados.get('end', 254)),
            type=str(dados.get('type', 'devices')),
        )


def carregar_redes(definicoes: Optional[Iterable[Dict[str, Any]]] = None,
                   arquivo: Optional[str] = None) -> List[NetworkRange]:
    """
    Monta a lista de faixas. Prioridade: `definicoes` explícitas, arquivo YAML,
    faixas padrão. Entradas inválidas são ignoradas com aviso.
    """
    if definicoes is None and arquivo and os.path.exists(arquivo):
        try:
            with open(arquivo, 'r', encoding='utf-8') as f:
                definicoes = yaml.safe_load(f) or []
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Erro ao ler faixas de rede em {arquivo}: {e}")
            definicoes = None

    if definicoes is None:
        definicoes = REDES_PADRAO

    redes = []
    for item in definicoes:
        try:
            redes.append(item if isinstance(item, NetworkRange) else NetworkRange.from_dict(item))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Faixa de rede ignorada ({item}): {e}")

    logger.info(f"{len(redes)} faixas de rede configuradas")
    return redes
