from sqlalchemy import Column, Integer, String, DateTime, JSON, Text, Enum as SQLEnum
from sqlalchemy.sql import func
from app.database import Base
import enum


class AuditAction(str, enum.Enum):
    DATA_IMPORT = "DATA_IMPORT"
    CODE_DEACTIVATED = "code_deactivated"
    JOB_ROLE_CREATED = "job_role_created"
    JOB_ROLE_ASSIGNED = "job_role_assigned"
    CAPABILITY_EVALUATION_CREATE = "CAPABILITY_EVALUATION_CREATE"


class AuditLog(Base):
    """
    Trilha de auditoria das escritas no catálogo. entity_key guarda a chave
    natural quando existe (código CID, código CBO) para sobreviver a reimportações.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    action = Column(SQLEnum(AuditAction, values_callable=lambda e: [member.value for member in e]), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_key = Column(String(50), nullable=True, index=True)

    actor_id = Column(String(100), nullable=False, default="system")
    actor_email = Column(String(200), nullable=True)
    actor_role = Column(String(50), nullable=True)

    description = Column(Text, nullable=True)
    new_values = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
