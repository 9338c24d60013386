# superips/services/scheduler.py
import asyncio
import logging
import time
from typing import Callable, List, Optional

from flask import Flask

from superips.services.discovery_service import DiscoveryService
from superips.services.event_bus import EventBus
from superips.services.settings_service import carregar_configuracoes
from superips.services.status_worker import StatusWorker
from superips.utils.async_runner import get_async_loop

logger = logging.getLogger(__name__)

ACAO_DESCOBERTA = 'discovery'
ACAO_STATUS = 'status'


class DiscoveryScheduler:
    """
    Disparo periódico no loop de fundo: descoberta avançada a cada
    `discovery_interval` minutos (se `auto_discovery_enabled`) e verificação
    de status a cada `status_check_interval` minutos. Os intervalos são
    relidos da tabela settings a cada ciclo.
    """

    def __init__(self, app: Flask, discovery_service: DiscoveryService,
                 event_bus: EventBus = None, intervalo_ciclo: float = 30.0,
                 relogio: Callable[[], float] = time.monotonic):
        self.app = app
        self.discovery_service = discovery_service
        self.event_bus = event_bus or discovery_service.event_bus
        self.intervalo_ciclo = intervalo_ciclo
        self.relogio = relogio
        self.running = False
        self.ultima_descoberta = self.ultimo_status = relogio()
        self._future = None

    def _carregar_configuracoes(self):
        with self.app.app_context():
            return carregar_configuracoes()

    def _verificar_status(self, timeout_ms: int) -> int:
        worker = StatusWorker(
            self.app.config['SQLALCHEMY_DATABASE_URI'],
            event_bus=self.event_bus,
            timeout_ms=timeout_ms,
        )
        return worker.executar()

    async def ciclo(self, agora: Optional[float] = None) -> List[str]:
        """Uma passada do agendador. Retorna as ações disparadas."""
        agora = self.relogio() if agora is None else agora
        configuracoes = await asyncio.to_thread(self._carregar_configuracoes)
        acoes = []

        if (configuracoes.auto_discovery_enabled
                and agora - self.ultima_descoberta >= configuracoes.discovery_interval * 60):
            self.ultima_descoberta = agora
            if await self.discovery_service.executar_descoberta_avancada():
                acoes.append(ACAO_DESCOBERTA)
            else:
                logger.info("Descoberta agendada ignorada: outra execução em andamento")

        if agora - self.ultimo_status >= configuracoes.status_check_interval * 60:
            self.ultimo_status = agora
            # thread separada: engine e retries próprios
            await asyncio.to_thread(self._verificar_status, configuracoes.ping_timeout)
            acoes.append(ACAO_STATUS)

        return acoes

    async def executar(self):
        self.running = True
        logger.info("Agendador de descoberta iniciado")
        while self.running:
            try:
                await asyncio.sleep(self.intervalo_ciclo)
                await self.ciclo()
            except asyncio.CancelledError:
                logger.info("Agendador cancelado")
                raise
            except Exception as e:
                logger.exception(f"Erro no ciclo do agendador: {e}")

    def iniciar(self):
        if self._future is None or self._future.done():
            self._future = get_async_loop().run_coro(self.executar())
        return self._future

    def parar(self):
        self.running = False
        if self._future is not None:
            self._future.cancel()
            self._future = None
