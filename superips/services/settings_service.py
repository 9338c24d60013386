# superips/services/settings_service.py
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict

from superips.repositories.setting_repository import SettingRepository

logger = logging.getLogger(__name__)

PADROES = {
    'discovery_interval': 30,       # minutos
    'ping_timeout': 2000,           # ms
    'batch_size': 20,
    'auto_discovery_enabled': True,
    'status_check_interval': 5,     # minutos
}


@dataclass(frozen=True)
class ConfiguracoesDescoberta:
    discovery_interval: int = PADROES['discovery_interval']
    ping_timeout: int = PADROES['ping_timeout']
    batch_size: int = PADROES['batch_size']
    auto_discovery_enabled: bool = PADROES['auto_discovery_enabled']
    status_check_interval: int = PADROES['status_check_interval']

    @property
    def lote_varredura(self) -> int:
        return self.batch_size

    @property
    def lote_atualizacao(self) -> int:
        # cada item da atualização faz mais I/O auxiliar
        return max(1, self.batch_size // 4)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _converter(chave: str, valor: Any) -> Any:
    padrao = PADROES[chave]
    if isinstance(padrao, bool):
        if isinstance(valor, bool):
            return valor
        return str(valor).strip().lower() in ('1', 'true', 'yes', 'sim', 'on')
    numero = int(valor)
    if numero < 1:
        raise ValueError(f"{chave} deve ser positivo")
    return numero


def carregar_configuracoes() -> ConfiguracoesDescoberta:
    """Lê os ajustes da tabela `settings`; valores ausentes ou inválidos usam o padrão."""
    valores = {}
    for chave, bruto in SettingRepository().obter_todas().items():
        if chave not in PADROES:
            continue
        try:
            valores[chave] = _converter(chave, bruto)
        except (TypeError, ValueError):
            logger.warning(f"Valor inválido para {chave}: {bruto!r}; usando padrão")
    return ConfiguracoesDescoberta(**valores)


def atualizar_configuracoes(dados: Dict[str, Any]) -> ConfiguracoesDescoberta:
    """
    Valida e grava os ajustes conhecidos. Chaves desconhecidas geram ValueError
    para que a API responda 400.
    """
    desconhecidas = set(dados) - set(PADROES)
    if desconhecidas:
        raise ValueError(f"Configurações desconhecidas: {', '.join(sorted(desconhecidas))}")

    convertidos = {chave: _converter(chave, valor) for chave, valor in dados.items()}
    repository = SettingRepository()
    for chave, valor in convertidos.items():
        repository.salvar(chave, valor)
    logger.info(f"Configurações atualizadas: {list(convertidos)}")
    return carregar_configuracoes()


def garantir_configuracoes_padrao() -> int:
    return SettingRepository().garantir_padroes(PADROES)
