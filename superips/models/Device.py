from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from superips.db import db

TIPO_PADRAO = "Dispositivo"
USUARIO_PADRAO = "Não identificado"
SETOR_PADRAO = "Não identificado"


class DeviceMixin:
    """Colunas comuns às tabelas `devices` e `vlan`."""

    id = Column(Integer, primary_key=True)
    ip = Column(String(15), nullable=False, unique=True)
    name = Column(String(100))
    type = Column(String(50), default=TIPO_PADRAO, index=True)
    user = Column(String(100), default=USUARIO_PADRAO)
    sector = Column(String(100), default=SETOR_PADRAO)
    status = Column(Integer, default=0, index=True)  # 1 online, 0 offline
    mac = Column(String(17))
    vendor = Column(String(100))
    hostname = Column(String(255))
    workgroup = Column(String(100))

    # Campos mantidos pelo CRUD, nunca escritos pela descoberta
    login = Column(String(100))
    ssid = Column(String(100))
    hidden = Column(Boolean, default=False)

    last_seen = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'table': self.__tablename__,
            'ip': self.ip,
            'name': self.name,
            'type': self.type,
            'user': self.user,
            'sector': self.sector,
            'status': self.status,
            'mac': self.mac,
            'vendor': self.vendor,
            'hostname': self.hostname,
            'workgroup': self.workgroup,
            'login': self.login,
            'ssid': self.ssid,
            'hidden': bool(self.hidden),
            'last_seen': self.last_seen.isoformat() if self.last_seen else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class Device(DeviceMixin, db.Model):
    __tablename__ = 'devices'


class Vlan(DeviceMixin, db.Model):
    __tablename__ = 'vlan'


TABELAS = {
    'devices': Device,
    'vlan': Vlan,
}
