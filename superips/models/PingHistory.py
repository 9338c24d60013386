from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Index, String
from sqlalchemy.sql import func
from superips.db import db


class PingHistory(db.Model):
    __tablename__ = 'ping_history'

    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey('devices.id', ondelete='SET NULL'), nullable=True)
    ip = Column(String(15), nullable=False)
    status = Column(Integer, nullable=False)
    response_time = Column(Float)  # ms
    timestamp = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index('idx_ping_history_device_timestamp', 'device_id', 'timestamp'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'device_id': self.device_id,
            'ip': self.ip,
            'status': self.status,
            'response_time': self.response_time,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }
