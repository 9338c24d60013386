import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class DiscoveryStatus:
    """
    Estado global da descoberta. Só o orquestrador escreve; os demais leem
    via snapshot(). As transições usam um lock para que "verificar e iniciar"
    seja atômico.
    """
    is_running: bool = False
    last_run: Optional[datetime] = None
    found_devices: int = 0
    progress: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def tentar_iniciar(self) -> bool:
        """Inicia somente se estiver ocioso. Retorna False se já houver execução."""
        with self._lock:
            if self.is_running:
                return False
            self.is_running = True
            self.found_devices = 0
            self.progress = 0
            return True

    def registrar_progresso(self, progresso: int) -> int:
        with self._lock:
            # progresso nunca regride dentro de uma execução
            self.progress = max(self.progress, min(100, int(progresso)))
            return self.progress

    def registrar_dispositivo(self) -> int:
        with self._lock:
            self.found_devices += 1
            return self.found_devices

    def finalizar(self):
        with self._lock:
            self.is_running = False
            self.progress = 100
            self.last_run = datetime.now(timezone.utc)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'isRunning': self.is_running,
                'lastRun': self.last_run.isoformat() if self.last_run else None,
                'foundDevices': self.found_devices,
                'progress': self.progress,
            }
