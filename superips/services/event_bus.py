# superips/services/event_bus.py
"""
Canal publish/subscribe entre a descoberta e quem acompanha em tempo real.

Cada assinante tem uma fila limitada; se ele não consumir a tempo, os eventos
mais antigos são descartados. Listeners síncronos por nome de evento também
são suportados (usados pelos testes e por integrações no mesmo processo).
"""
import json
import logging
import threading
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

EVENTO_PROGRESSO = 'discoveryProgress'
EVENTO_NOVO_DISPOSITIVO = 'newDeviceFound'
EVENTO_DISPOSITIVO_ATUALIZADO = 'deviceUpdated'
EVENTO_CONCLUIDO = 'discoveryComplete'
EVENTO_STATUS = 'deviceStatusUpdate'

Evento = Tuple[str, Dict[str, Any]]


class Assinatura:
    """Fila de um assinante. `proximo()` bloqueia até chegar evento ou expirar."""

    def __init__(self, capacidade: int):
        self.fila: Deque[Evento] = deque(maxlen=capacidade)
        self.descartados = 0
        self._condicao = threading.Condition()

    def _entregar(self, evento: Evento):
        with self._condicao:
            if len(self.fila) == self.fila.maxlen:
                self.descartados += 1
            self.fila.append(evento)
            self._condicao.notify()

    def proximo(self, timeout: Optional[float] = None) -> Optional[Evento]:
        with self._condicao:
            if not self.fila:
                self._condicao.wait(timeout)
            return self.fila.popleft() if self.fila else None

    def pendentes(self) -> List[Evento]:
        with self._condicao:
            eventos = list(self.fila)
            self.fila.clear()
            return eventos


class EventBus:

    def __init__(self, capacidade: int = 200):
        self.capacidade = capacidade
        self._assinaturas: List[Assinatura] = []
        self._listeners: Dict[str, List[Callable[[Dict[str, Any]], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def assinar(self) -> Assinatura:
        assinatura = Assinatura(self.capacidade)
        with self._lock:
            self._assinaturas.append(assinatura)
        return assinatura

    def cancelar(self, assinatura: Assinatura):
        with self._lock:
            if assinatura in self._assinaturas:
                self._assinaturas.remove(assinatura)

    def on(self, evento: str, callback: Callable[[Dict[str, Any]], None]):
        with self._lock:
            self._listeners[evento].append(callback)

    def off(self, evento: str, callback: Callable[[Dict[str, Any]], None]):
        with self._lock:
            if callback in self._listeners.get(evento, []):
                self._listeners[evento].remove(callback)

    def publicar(self, evento: str, dados: Dict[str, Any]):
        with self._lock:
            assinaturas = list(self._assinaturas)
            listeners = list(self._listeners.get(evento, []))

        for assinatura in assinaturas:
            assinatura._entregar((evento, dados))

        for callback in listeners:
            try:
                callback(dados)
            except Exception:
                # um listener com defeito não interrompe a descoberta
                logger.exception(f"Listener de {evento} falhou")

    def stream(self, assinatura: Assinatura, keepalive: float = 15.0) -> Iterator[str]:
        """Gera mensagens no formato Server-Sent Events até o cliente desconectar."""
        try:
            while True:
                evento = assinatura.proximo(timeout=keepalive)
                if evento is None:
                    yield ": keepalive\n\n"
                    continue
                nome, dados = evento
                yield f"event: {nome}\ndata: {json.dumps(dados, ensure_ascii=False, default=str)}\n\n"
        finally:
            self.cancelar(assinatura)


event_bus = EventBus()
