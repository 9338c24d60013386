from typing import Any, Dict

from superips.models.Setting import Setting
from superips.repositories.base_repository import BaseRepository


class SettingRepository(BaseRepository[Setting]):

    def __init__(self):
        super().__init__(Setting)

    def obter_todas(self) -> Dict[str, str]:
        return {s.key: s.value for s in self.get_all()}

    def salvar(self, chave: str, valor: Any) -> bool:
        def _salvar():
            setting = self.db.session.get(Setting, chave)
            if setting:
                setting.value = str(valor)
            else:
                self.db.session.add(Setting(key=chave, value=str(valor)))
            self.db.session.commit()
            return True

        return self._seguro(_salvar, False, "salvar")

    def garantir_padroes(self, padroes: Dict[str, Any]) -> int:
        """Grava os valores padrão que ainda não existem. Retorna quantos foram criados."""
        def _garantir():
            existentes = {s.key for s in self.db.session.query(Setting).all()}
            novos = [Setting(key=k, value=str(v)) for k, v in padroes.items() if k not in existentes]
            self.db.session.add_all(novos)
            self.db.session.commit()
            return len(novos)

        return self._seguro(_garantir, 0, "garantir_padroes")
