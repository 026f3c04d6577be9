"""BackupLog model - one row per tenant backup attempt."""
from sqlalchemy import Column, BigInteger, String, Integer, Text, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from ealbaran.database import Base, BigIntPK


class BackupLog(Base):
    __tablename__ = 'backup_log'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(String(20), nullable=False, default='automated')  # automated, manual
    status = Column(String(20), nullable=False)  # completed, failed
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    record_counts = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<BackupLog(tenant_id={self.tenant_id}, status='{self.status}', file='{self.file_name}')>"
