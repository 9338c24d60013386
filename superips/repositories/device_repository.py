import logging
from typing import Any, Dict, List, Optional, Set

from sqlalchemy.exc import IntegrityError

from superips.models.Device import TIPO_PADRAO, USUARIO_PADRAO, SETOR_PADRAO, TABELAS
from superips.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Campos que a descoberta pode escrever. login/ssid/hidden pertencem ao CRUD.
CAMPOS_DESCOBERTA = (
    'name', 'type', 'user', 'sector', 'status', 'mac', 'vendor',
    'hostname', 'workgroup', 'last_seen',
)

# Campos aceitos pelo cadastro manual
CAMPOS_CADASTRO = (
    'ip', 'name', 'type', 'user', 'sector', 'login', 'ssid', 'hidden',
)

# Só sobrescritos quando o novo valor não é vazio
CAMPOS_SE_PRESENTES = ('name', 'mac', 'vendor', 'hostname', 'user', 'workgroup')


def _vazio(campo: str, valor: Any) -> bool:
    if valor is None or valor == '':
        return True
    return campo == 'user' and valor == USUARIO_PADRAO


class DeviceRepository(BaseRepository):
    """Acesso às tabelas `devices` e `vlan` (mesmo formato)."""

    def __init__(self, model_class):
        super().__init__(model_class)

    @classmethod
    def para_tabela(cls, tabela: str) -> "DeviceRepository":
        return cls(TABELAS[tabela])

    @property
    def tabela(self) -> str:
        return self.model_class.__tablename__

    def _query(self):
        return self.db.session.query(self.model_class)

    def listar(self) -> List[Dict[str, Any]]:
        return self._seguro(
            lambda: [d.to_dict() for d in self._query().order_by(self.model_class.ip).all()],
            [],
            "listar",
        )

    def listar_por_tipo(self, tipo: str, por_setor: bool = False) -> List[Dict[str, Any]]:
        def _consulta():
            query = self._query().filter(self.model_class.type == tipo)
            if por_setor:
                query = query.order_by(self.model_class.sector, self.model_class.ip)
            else:
                query = query.order_by(self.model_class.ip)
            return [d.to_dict() for d in query.all()]

        return self._seguro(_consulta, [], "listar_por_tipo")

    def listar_por_setor(self, setor: str) -> List[Dict[str, Any]]:
        return self._seguro(
            lambda: [d.to_dict() for d in self._query()
                     .filter(self.model_class.sector == setor)
                     .order_by(self.model_class.name).all()],
            [],
            "listar_por_setor",
        )

    def buscar_por_id(self, device_id: int) -> Optional[Dict[str, Any]]:
        device = self.get_by_id(device_id)
        return device.to_dict() if device else None

    def buscar_por_ip(self, ip: str) -> Optional[Dict[str, Any]]:
        device = self._seguro(
            lambda: self._query().filter(self.model_class.ip == ip).first(),
            None,
            "buscar_por_ip",
        )
        return device.to_dict() if device else None

    def ips_conhecidos(self) -> Set[str]:
        return self._seguro(
            lambda: {ip for (ip,) in self.db.session.query(self.model_class.ip).all()},
            set(),
            "ips_conhecidos",
        )

    def inserir_se_ausente(self, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Insere um dispositivo novo. Retorna None se o IP já existir na tabela
        ou se a escrita falhar; nunca cria duplicata.
        """
        ip = dados.get('ip')
        if not ip:
            logger.warning("inserir_se_ausente chamado sem IP válido.")
            return None

        def _inserir():
            if self._query().filter(self.model_class.ip == ip).first():
                return None
            campos = {k: v for k, v in dados.items() if k in CAMPOS_DESCOBERTA and v is not None}
            campos.setdefault('name', ip)
            campos.setdefault('type', TIPO_PADRAO)
            campos.setdefault('user', USUARIO_PADRAO)
            campos.setdefault('sector', SETOR_PADRAO)
            device = self.model_class(ip=ip, **campos)
            self.db.session.add(device)
            try:
                self.db.session.commit()
            except IntegrityError:
                # outro escritor inseriu o mesmo IP entre a busca e o commit
                self.db.session.rollback()
                logger.info(f"IP {ip} já existe em {self.tabela}; inserção ignorada")
                return None
            logger.info(f"Novo dispositivo {ip} salvo em {self.tabela}")
            return device.to_dict()

        return self._seguro(_inserir, None, "inserir_se_ausente")

    def atualizar_descoberta(self, device_id: int, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Atualiza com o resultado de uma descoberta sem apagar o que já se sabe:
        campos vazios não sobrescrevem valores existentes, `type` só é trocado
        por uma classificação específica e `sector` só é preenchido se desconhecido.
        """
        def _atualizar():
            device = self.db.session.get(self.model_class, device_id)
            if not device:
                return None
            for campo, valor in dados.items():
                if campo not in CAMPOS_DESCOBERTA:
                    continue
                if campo in CAMPOS_SE_PRESENTES and _vazio(campo, valor):
                    continue
                if campo == 'type' and (not valor or (valor == TIPO_PADRAO and device.type)):
                    continue
                if campo == 'sector' and (not valor or device.sector not in (None, '', SETOR_PADRAO)):
                    continue
                setattr(device, campo, valor)
            self.db.session.commit()
            return device.to_dict()

        return self._seguro(_atualizar, None, "atualizar_descoberta")

    def atualizar_status(self, device_id: int, status: int) -> bool:
        resultado = self.execute(
            f"UPDATE {self.tabela} SET status = :status, updated_at = CURRENT_TIMESTAMP WHERE id = :id",
            {'status': int(status), 'id': device_id},
        )
        return resultado.rowcount > 0

    # -----------------------
    # Cadastro manual
    # -----------------------
    def criar(self, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Cadastro manual. None se o IP já existir ou a escrita falhar."""
        def _criar():
            campos = {k: v for k, v in dados.items() if k in CAMPOS_CADASTRO and v is not None}
            campos.setdefault('name', campos.get('ip'))
            device = self.model_class(**campos)
            self.db.session.add(device)
            self.db.session.commit()
            logger.info(f"Dispositivo {device.ip} cadastrado em {self.tabela}")
            return device.to_dict()

        return self._seguro(_criar, None, "criar")

    def atualizar(self, device_id: int, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Edição manual: grava exatamente o que veio, inclusive login/ssid/hidden."""
        def _atualizar():
            device = self.db.session.get(self.model_class, device_id)
            if not device:
                return None
            for campo, valor in dados.items():
                if campo in CAMPOS_CADASTRO:
                    setattr(device, campo, valor)
            self.db.session.commit()
            return device.to_dict()

        return self._seguro(_atualizar, None, "atualizar")

    def remover(self, device_id: int) -> bool:
        def _remover():
            device = self.db.session.get(self.model_class, device_id)
            if not device:
                return False
            self.db.session.delete(device)
            self.db.session.commit()
            logger.info(f"Dispositivo {device_id} removido de {self.tabela}")
            return True

        return self._seguro(_remover, False, "remover")
