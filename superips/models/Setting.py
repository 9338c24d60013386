from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from superips.db import db


class Setting(db.Model):
    __tablename__ = 'settings'

    key = Column(String(100), primary_key=True)
    value = Column(String(255), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {'key': self.key, 'value': self.value}
