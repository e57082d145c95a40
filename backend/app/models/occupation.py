from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON, UniqueConstraint, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum


class StratumLevel(str, enum.Enum):
    """Estratos de Jaques (time-span of discretion), em ordem crescente."""
    S1 = "S1"
    S2 = "S2"
    S3 = "S3"
    S4 = "S4"
    S5 = "S5"
    S6 = "S6"
    S7 = "S7"
    S8 = "S8"


class CBOLevel(int, enum.Enum):
    GRANDE_GRUPO = 1
    SUBGRUPO_PRINCIPAL = 2
    SUBGRUPO = 3
    FAMILIA = 4


class CBOGroup(Base):
    """
    Nó da hierarquia CBO. Códigos são namespaced por nível
    (GG:1, MSG:12, SG:223, FAM:201) porque os ids das planilhas não são globais.
    """
    __tablename__ = "cbo_groups"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(30), nullable=False, unique=True, index=True)
    name = Column(String(300), nullable=False)
    level = Column(Integer, nullable=False)
    parent_id = Column(Integer, ForeignKey("cbo_groups.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    parent = relationship("CBOGroup", remote_side=[id], back_populates="children")
    children = relationship("CBOGroup", back_populates="parent")
    occupations = relationship("Occupation", back_populates="group")


class Occupation(Base):
    __tablename__ = "occupations"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(30), nullable=False, unique=True, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    group_id = Column(Integer, ForeignKey("cbo_groups.id"), nullable=True)
    synonyms = Column(JSON, default=list)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    group = relationship("CBOGroup", back_populates="occupations")
    job_roles = relationship("JobRole", back_populates="occupation")


class JobRole(Base):
    __tablename__ = "job_roles"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    occupation_id = Column(Integer, ForeignKey("occupations.id"), nullable=True)
    required_min_stratum = Column(SQLEnum(StratumLevel), nullable=False)
    required_max_stratum = Column(SQLEnum(StratumLevel), nullable=True)
    description = Column(Text, nullable=True)
    tasks = Column(Text, nullable=True)
    capabilities = Column(JSON, nullable=True)  # nome -> peso (0..1)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    occupation = relationship("Occupation", back_populates="job_roles")
    assignments = relationship("UserJobRole", back_populates="job_role")


class UserJobRole(Base):
    __tablename__ = "user_job_roles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(100), nullable=False)
    job_role_id = Column(Integer, ForeignKey("job_roles.id"), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    job_role = relationship("JobRole", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("user_id", "job_role_id", name="uq_user_job_role"),
    )


class CapabilityEvaluation(Base):
    """Avaliação pontual de capacidade. Imutável após criada."""
    __tablename__ = "capability_evaluations"

    id = Column(Integer, primary_key=True, index=True)
    subject_user_id = Column(String(100), nullable=False)
    evaluator_user_id = Column(String(100), nullable=False)
    job_role_id = Column(Integer, ForeignKey("job_roles.id"), nullable=True)
    stratum_assessed = Column(SQLEnum(StratumLevel), nullable=False)
    potential_stratum = Column(SQLEnum(StratumLevel), nullable=True)
    time_span_months = Column(Integer, nullable=True)
    evidence = Column(Text, nullable=True)
    gaps = Column(JSON, nullable=True)
    recommendations = Column(Text, nullable=True)
    capability_scores = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    job_role = relationship("JobRole")

    __table_args__ = (
        Index("ix_capability_evaluations_subject_created", "subject_user_id", "created_at"),
    )
