# superips/services/discovery_service.py
"""
Orquestrador da descoberta de dispositivos.

Dois modos com a mesma estrutura:
  - varredura (sweep): percorre as faixas configuradas, ignora IPs já
    cadastrados e insere os hosts vivos encontrados;
  - avançada (refresh): percorre tudo que está em `devices` e `vlan`,
    marca offline quem não responde e enriquece/atualiza quem responde.

Os itens são processados em lotes: todos os itens de um lote começam juntos
e o lote inteiro termina antes do próximo. Só uma execução por vez.
"""
import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from flask import Flask

from superips.models.Device import TABELAS
from superips.models.DiscoveryStatus import DiscoveryStatus
from superips.models.NetworkRange import NetworkRange, carregar_redes
from superips.repositories.device_repository import DeviceRepository
from superips.services.classifier import DeviceClassifier, detectar_setor
from superips.services.event_bus import (
    EventBus, event_bus as bus_padrao,
    EVENTO_PROGRESSO, EVENTO_NOVO_DISPOSITIVO,
    EVENTO_DISPOSITIVO_ATUALIZADO, EVENTO_CONCLUIDO,
)
from superips.services.settings_service import ConfiguracoesDescoberta, carregar_configuracoes
from superips.utils.async_runner import get_async_loop
from superips.utils.network.portas import PORTAS_VIVACIDADE, PORTAS_FINGERPRINT, escanear_portas
from superips.utils.network.resolvers import TimeoutsResolvedores, coletar_informacoes

logger = logging.getLogger(__name__)

MODO_VARREDURA = 'sweep'
MODO_AVANCADO = 'enhanced'

# portas que só entram no fingerprint (as de vivacidade já foram testadas)
PORTAS_COMPLEMENTARES = [p for p in PORTAS_FINGERPRINT if p not in PORTAS_VIVACIDADE]


class DiscoveryService:
    def __init__(self, app: Flask = None, event_bus: EventBus = None,
                 classifier: DeviceClassifier = None,
                 redes: Optional[Sequence[NetworkRange]] = None):
        """
        Recebe opcionalmente a app para usar app_context.
        `redes` explícitas têm prioridade sobre a configuração da app.
        """
        self.app = app
        self.event_bus = event_bus or bus_padrao
        self.classifier = classifier or DeviceClassifier()
        self.status = DiscoveryStatus()
        self._redes_explicitas = list(redes) if redes is not None else None
        self.redes: List[NetworkRange] = list(self._redes_explicitas or [])
        self.pausa_entre_lotes = 1.0
        self.timeouts = TimeoutsResolvedores()
        # toda escrita no banco passa por uma única thread com app_context
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="superips-db")
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask, event_bus: EventBus = None):
        self.app = app
        if event_bus is not None:
            self.event_bus = event_bus
        if self._redes_explicitas is not None:
            self.redes = list(self._redes_explicitas)
        else:
            self.redes = carregar_redes(app.config.get('NETWORK_RANGES'),
                                        app.config.get('NETWORK_RANGES_FILE'))
        self.pausa_entre_lotes = float(app.config.get('DISCOVERY_BATCH_DELAY', 1.0))
        self.timeouts = TimeoutsResolvedores(
            dns=float(app.config.get('DNS_TIMEOUT', 2.0)),
            arp=float(app.config.get('ARP_TIMEOUT', 4.0)),
            netbios=float(app.config.get('NETBIOS_TIMEOUT', 6.0)),
            snmp=float(app.config.get('SNMP_TIMEOUT', 2.0)),
            snmp_community=app.config.get('SNMP_COMMUNITY', 'public'),
        )
        app.extensions['superips_discovery'] = self

    # -----------------------
    # Controle
    # -----------------------
    def obter_status(self) -> Dict[str, Any]:
        return self.status.snapshot()

    def iniciar_varredura(self) -> bool:
        """Agenda a varredura no loop de fundo. False se já houver uma execução."""
        return self._agendar(MODO_VARREDURA)

    def iniciar_descoberta_avancada(self) -> bool:
        return self._agendar(MODO_AVANCADO)

    async def executar_varredura(self) -> bool:
        if not self._reservar(MODO_VARREDURA):
            return False
        await self._executar(MODO_VARREDURA)
        return True

    async def executar_descoberta_avancada(self) -> bool:
        if not self._reservar(MODO_AVANCADO):
            return False
        await self._executar(MODO_AVANCADO)
        return True

    def _reservar(self, modo: str) -> bool:
        if not self.app:
            logger.error("DiscoveryService precisa de app (chame init_app ou passe app no construtor).")
            return False
        if not self.status.tentar_iniciar():
            logger.warning(f"Descoberta ({modo}) recusada: já existe uma execução em andamento")
            return False
        return True

    def _agendar(self, modo: str) -> bool:
        if not self._reservar(modo):
            return False
        coro = self._executar(modo)
        try:
            future = get_async_loop().run_coro(coro)
        except Exception:
            coro.close()
            self.status.finalizar()
            logger.exception(f"Falha ao agendar descoberta ({modo})")
            raise
        logger.info(f"Descoberta ({modo}) agendada -> future={future}")
        return True

    # -----------------------
    # Execução
    # -----------------------
    async def _em_contexto(self, funcao: Callable, *args, **kwargs):
        """Roda `funcao` na thread de banco, dentro do app_context."""
        def _rodar():
            with self.app.app_context():
                return funcao(*args, **kwargs)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, _rodar)

    async def _executar(self, modo: str):
        inicio = time.monotonic()
        total = processados = 0
        try:
            configuracoes = await self._em_contexto(carregar_configuracoes)
            if modo == MODO_VARREDURA:
                itens = await self._alvos_varredura()
                tamanho_lote = configuracoes.lote_varredura
                processar = self._processar_ip
            else:
                itens = await self._em_contexto(self._dispositivos_cadastrados)
                tamanho_lote = configuracoes.lote_atualizacao
                processar = self._atualizar_dispositivo

            total = len(itens)
            logger.info(f"Descoberta ({modo}) iniciada: {total} alvos, lotes de {tamanho_lote}")

            for posicao in range(0, total, tamanho_lote):
                lote = itens[posicao:posicao + tamanho_lote]
                resultados = await asyncio.gather(
                    *(processar(item, configuracoes) for item in lote),
                    return_exceptions=True,
                )
                for item, resultado in zip(lote, resultados):
                    if isinstance(resultado, BaseException):
                        logger.error(f"Falha processando {item}: {resultado!r}")

                processados += len(lote)
                progresso = self.status.registrar_progresso(round(processados / total * 100))
                self.event_bus.publicar(EVENTO_PROGRESSO, {
                    'progress': progresso,
                    'processed': processados,
                    'total': total,
                    'found': self.status.found_devices,
                })

                if processados < total and self.pausa_entre_lotes > 0:
                    await asyncio.sleep(self.pausa_entre_lotes)
        except Exception:
            logger.exception(f"Erro na descoberta ({modo})")
        finally:
            self.status.finalizar()
            duracao = round(time.monotonic() - inicio, 2)
            encontrados = self.status.found_devices
            logger.info(f"Descoberta ({modo}) concluída: {encontrados} dispositivos, "
                        f"{processados}/{total} processados em {duracao}s")
            self.event_bus.publicar(EVENTO_CONCLUIDO, {
                'foundDevices': encontrados,
                'totalProcessed': processados,
                'duration': duracao,
                'mode': modo,
            })

    async def _alvos_varredura(self) -> List[Tuple[str, str]]:
        """(ip, tabela) de todas as faixas, sem IPs já cadastrados na tabela de destino."""
        alvos, vistos = [], set()
        for rede in self.redes:
            repository = DeviceRepository.para_tabela(rede.tabela)
            conhecidos = await self._em_contexto(repository.ips_conhecidos)
            for ip in rede.enderecos():
                chave = (ip, rede.tabela)
                if ip in conhecidos or chave in vistos:
                    continue
                vistos.add(chave)
                alvos.append(chave)
        return alvos

    @staticmethod
    def _dispositivos_cadastrados() -> List[Tuple[str, int, str]]:
        itens = []
        for tabela in TABELAS:
            for device in DeviceRepository.para_tabela(tabela).listar():
                itens.append((tabela, device['id'], device['ip']))
        return itens

    async def _portas_abertas(self, ip: str, timeout_ms: int) -> List[int]:
        """
        Vivacidade e fingerprint em uma só passada: se nenhuma porta de
        vivacidade responde o host está morto; senão testa só as restantes.
        """
        abertas = await escanear_portas(ip, PORTAS_VIVACIDADE, timeout_ms)
        if not abertas:
            return []
        complementares = await escanear_portas(ip, PORTAS_COMPLEMENTARES, timeout_ms)
        return sorted(set(abertas) | set(complementares))

    async def _enriquecer(self, ip: str, portas_abertas: List[int]) -> Dict[str, Any]:
        info = await coletar_informacoes(ip, portas_abertas, self.timeouts)
        sys_name = (info.snmp or {}).get('sys_name')
        tipo = self.classifier.classificar(
            ip,
            portas_abertas,
            hostname=info.hostname or sys_name,
            name=info.nome,
            mac=info.mac,
            vendor=info.vendor,
        )
        return {
            'ip': ip,
            'name': info.nome,
            'hostname': info.hostname,
            'mac': info.mac,
            'vendor': info.vendor,
            'user': info.usuario,
            'workgroup': info.workgroup,
            'type': tipo,
            'sector': detectar_setor(ip),
            'status': 1,
            'last_seen': datetime.now(timezone.utc),
        }

    async def _processar_ip(self, alvo: Tuple[str, str],
                            configuracoes: ConfiguracoesDescoberta) -> Optional[Dict[str, Any]]:
        ip, tabela = alvo
        abertas = await self._portas_abertas(ip, configuracoes.ping_timeout)
        if not abertas:
            return None

        dados = await self._enriquecer(ip, abertas)
        repository = DeviceRepository.para_tabela(tabela)
        salvo = await self._em_contexto(repository.inserir_se_ausente, dados)
        if not salvo:
            return None

        self.status.registrar_dispositivo()
        salvo['openPorts'] = abertas
        self.event_bus.publicar(EVENTO_NOVO_DISPOSITIVO, salvo)
        return salvo

    async def _atualizar_dispositivo(self, item: Tuple[str, int, str],
                                     configuracoes: ConfiguracoesDescoberta,
                                     contar: bool = True) -> Optional[Dict[str, Any]]:
        tabela, device_id, ip = item
        repository = DeviceRepository.para_tabela(tabela)
        abertas = await self._portas_abertas(ip, configuracoes.ping_timeout)

        if not abertas:
            await self._em_contexto(repository.atualizar_status, device_id, 0)
            self.event_bus.publicar(EVENTO_DISPOSITIVO_ATUALIZADO, {
                'id': device_id, 'table': tabela, 'ip': ip, 'status': 0,
            })
            return None

        dados = await self._enriquecer(ip, abertas)
        atualizado = await self._em_contexto(repository.atualizar_descoberta, device_id, dados)
        if not atualizado:
            return None

        if contar:
            self.status.registrar_dispositivo()
        atualizado['openPorts'] = abertas
        self.event_bus.publicar(EVENTO_DISPOSITIVO_ATUALIZADO, atualizado)
        return atualizado

    async def verificar_dispositivo(self, tabela: str, device_id: int) -> Optional[Dict[str, Any]]:
        """Atualização sob demanda de um único dispositivo (fora do controle de execução única)."""
        if tabela not in TABELAS:
            raise ValueError(f"Tabela desconhecida: {tabela}")
        repository = DeviceRepository.para_tabela(tabela)
        device = await self._em_contexto(repository.buscar_por_id, device_id)
        if not device:
            return None
        configuracoes = await self._em_contexto(carregar_configuracoes)
        atualizado = await self._atualizar_dispositivo(
            (tabela, device_id, device['ip']), configuracoes, contar=False)
        if atualizado is None:
            return await self._em_contexto(repository.buscar_por_id, device_id)
        return atualizado


discovery_service = DiscoveryService()
