# superips/services/status_worker.py
"""
Atualização em massa do status online/offline.

Roda em uma thread própria, com engine SQLAlchemy própria, para que rajadas
de escrita e novas tentativas não travem o loop da descoberta. Cada escrita
passa por `executar_com_retry`: erros de bloqueio/conexão são repetidos com
espera exponencial; qualquer outro erro desiste na hora.
"""
import asyncio
import logging
import random
import threading
import time
from typing import Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

from superips.models.Device import TABELAS
from superips.services.event_bus import EventBus, EVENTO_STATUS, event_bus as bus_padrao
from superips.utils.network.portas import PORTAS_STATUS, escanear_portas

logger = logging.getLogger(__name__)

R = TypeVar('R')

MENSAGENS_TRANSITORIAS = ('locked', 'busy', 'timeout')
# admin_shutdown / cannot_connect_now
CODIGOS_PG_TRANSITORIOS = ('57P01', '57P03')

LOTE_VERIFICACAO = 50


def _eh_erro_transitorio(erro: BaseException) -> bool:
    if isinstance(erro, DBAPIError) and erro.connection_invalidated:
        return True
    original = getattr(erro, 'orig', None)
    if getattr(original, 'pgcode', None) in CODIGOS_PG_TRANSITORIOS:
        return True
    if isinstance(erro, OperationalError):
        mensagem = str(original if original is not None else erro).lower()
        return any(m in mensagem for m in MENSAGENS_TRANSITORIAS)
    return False


def executar_com_retry(operacao: Callable[[], R], tentativas: int = 15, atraso_inicial: float = 0.1,
                       dormir: Callable[[float], None] = time.sleep,
                       aleatorio: Callable[[], float] = random.random) -> Optional[R]:
    """
    Executa `operacao` repetindo em erros transitórios de banco.
    Espera entre tentativas: atraso_inicial * 2**n * (0.5 + aleatório(0, 0.5)).
    Devolve None se esgotar as tentativas ou se o erro não for transitório.
    """
    for tentativa in range(tentativas):
        try:
            return operacao()
        except SQLAlchemyError as e:
            if not _eh_erro_transitorio(e):
                logger.error(f"Erro de banco não transitório, desistindo: {e}")
                return None
            if tentativa + 1 >= tentativas:
                break
            atraso = atraso_inicial * (2 ** tentativa) * (0.5 + aleatorio() * 0.5)
            logger.debug(f"Banco ocupado (tentativa {tentativa + 1}/{tentativas}), "
                         f"nova tentativa em {atraso:.3f}s: {e}")
            dormir(atraso)

    logger.error(f"Operação de banco abandonada após {tentativas} tentativas")
    return None


def criar_engine(database_uri: str) -> Engine:
    """Engine exclusiva do worker; SQLite em arquivo usa WAL e busy_timeout."""
    if database_uri.startswith('sqlite') and ':memory:' not in database_uri:
        engine = create_engine(database_uri, connect_args={'timeout': 30, 'check_same_thread': False})

        @event.listens_for(engine, "connect")
        def _configurar_sqlite(dbapi_connection, _):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

        return engine
    return create_engine(database_uri, pool_pre_ping=True)


class StatusWorker:

    def __init__(self, database_uri: str, event_bus: EventBus = None,
                 portas: List[int] = PORTAS_STATUS, timeout_ms: int = 2000,
                 tentativas: int = 15, atraso_inicial: float = 0.1):
        self.engine = criar_engine(database_uri)
        self.event_bus = event_bus or bus_padrao
        self.portas = list(portas)
        self.timeout_ms = timeout_ms
        self.tentativas = tentativas
        self.atraso_inicial = atraso_inicial

    def _com_retry(self, operacao: Callable[[], R]) -> Optional[R]:
        return executar_com_retry(operacao, self.tentativas, self.atraso_inicial)

    def _listar(self) -> List[Tuple[str, int, str]]:
        dispositivos = []
        with self.engine.connect() as conexao:
            for tabela in TABELAS:
                for device_id, ip in conexao.execute(text(f"SELECT id, ip FROM {tabela} ORDER BY id")):
                    dispositivos.append((tabela, device_id, ip))
        return dispositivos

    def _gravar(self, tabela: str, device_id: int, ip: str, status: int,
                tempo_resposta: Optional[float]) -> bool:
        with self.engine.begin() as conexao:
            conexao.execute(
                text("INSERT INTO ping_history (device_id, ip, status, response_time) "
                     "VALUES (:device_id, :ip, :status, :response_time)"),
                {
                    # histórico só referencia a tabela devices
                    'device_id': device_id if tabela == 'devices' else None,
                    'ip': ip,
                    'status': status,
                    'response_time': tempo_resposta,
                },
            )
            conexao.execute(
                text(f"UPDATE {tabela} SET status = :status, updated_at = CURRENT_TIMESTAMP "
                     f"WHERE id = :id"),
                {'status': status, 'id': device_id},
            )
        return True

    async def _verificar(self, ip: str) -> Tuple[int, Optional[float]]:
        inicio = time.monotonic()
        abertas = await escanear_portas(ip, self.portas, self.timeout_ms)
        if not abertas:
            return 0, None
        return 1, round((time.monotonic() - inicio) * 1000, 1)

    async def _executar(self) -> int:
        dispositivos = self._com_retry(self._listar) or []
        atualizados = 0

        for posicao in range(0, len(dispositivos), LOTE_VERIFICACAO):
            lote = dispositivos[posicao:posicao + LOTE_VERIFICACAO]
            resultados = await asyncio.gather(*(self._verificar(ip) for _, _, ip in lote))

            for (tabela, device_id, ip), (status, tempo) in zip(lote, resultados):
                gravado = await asyncio.to_thread(
                    self._com_retry,
                    lambda: self._gravar(tabela, device_id, ip, status, tempo),
                )
                if not gravado:
                    continue
                atualizados += 1
                self.event_bus.publicar(EVENTO_STATUS, {
                    'id': device_id,
                    'table': tabela,
                    'ip': ip,
                    'status': status,
                    'responseTime': tempo,
                })

        logger.info(f"Status atualizado para {atualizados}/{len(dispositivos)} dispositivos")
        return atualizados

    def executar(self) -> int:
        """Executa a verificação completa na thread atual (com loop próprio)."""
        try:
            return asyncio.run(self._executar())
        finally:
            self.engine.dispose()

    def iniciar(self) -> threading.Thread:
        """Dispara a verificação em uma thread daemon e retorna imediatamente."""
        def _rodar():
            try:
                self.executar()
            except Exception:
                logger.exception("Erro no worker de status")

        thread = threading.Thread(target=_rodar, name="superips-status", daemon=True)
        thread.start()
        return thread
