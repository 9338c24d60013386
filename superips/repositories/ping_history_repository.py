from typing import Any, Dict, List, Optional

from superips.models.PingHistory import PingHistory
from superips.repositories.base_repository import BaseRepository


class PingHistoryRepository(BaseRepository[PingHistory]):

    def __init__(self):
        super().__init__(PingHistory)

    def registrar(self, device_id: Optional[int], ip: str, status: int,
                  response_time: Optional[float] = None) -> bool:
        resultado = self.execute(
            "INSERT INTO ping_history (device_id, ip, status, response_time) "
            "VALUES (:device_id, :ip, :status, :response_time)",
            {'device_id': device_id, 'ip': ip, 'status': int(status), 'response_time': response_time},
        )
        return resultado.rowcount > 0

    def historico(self, device_id: int, limite: int = 100) -> List[Dict[str, Any]]:
        """Últimos registros de um dispositivo, mais recentes primeiro."""
        return self._seguro(
            lambda: [p.to_dict() for p in self.db.session.query(PingHistory)
                     .filter(PingHistory.device_id == device_id)
                     .order_by(PingHistory.timestamp.desc(), PingHistory.id.desc())
                     .limit(limite).all()],
            [],
            "historico",
        )
