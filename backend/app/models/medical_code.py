from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON, UniqueConstraint, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum


class CodeSystemKind(str, enum.Enum):
    CID10 = "CID10"
    CID11 = "CID11"
    CIAP2 = "CIAP2"
    NURSING = "NURSING"


class SexRestriction(str, enum.Enum):
    MALE = "M"
    FEMALE = "F"


class CrossAsterisk(str, enum.Enum):
    ETIOLOGY = "ETIOLOGY"
    MANIFESTATION = "MANIFESTATION"


class CodeSystem(Base):
    """
    Catálogo versionado de códigos (ex: CID-10 versão SSF).
    Criado/atualizado por importação; nunca removido, apenas desativado.
    """
    __tablename__ = "code_systems"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(SQLEnum(CodeSystemKind), nullable=False)
    version = Column(String(50), nullable=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    codes = relationship("MedicalCode", back_populates="system")

    __table_args__ = (
        UniqueConstraint("kind", "version", name="uq_code_system_kind_version"),
    )


class MedicalCode(Base):
    """
    Código de um sistema de codificação. Categorias (is_category=True) são
    a raiz; subcategorias apontam para a categoria via parent_id.
    """
    __tablename__ = "medical_codes"

    id = Column(Integer, primary_key=True, index=True)
    system_id = Column(Integer, ForeignKey("code_systems.id"), nullable=False)
    code = Column(String(20), nullable=False)
    display = Column(String(500), nullable=False)
    short_description = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    is_category = Column(Boolean, default=False, nullable=False)
    chapter = Column(String(20), nullable=True, index=True)
    parent_id = Column(Integer, ForeignKey("medical_codes.id"), nullable=True)
    sex_restriction = Column(SQLEnum(SexRestriction, values_callable=lambda x: [e.value for e in x]), nullable=True)
    cross_asterisk = Column(SQLEnum(CrossAsterisk), nullable=True)
    synonyms = Column(JSON, default=list)
    searchable_text = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    system = relationship("CodeSystem", back_populates="codes")
    parent = relationship("MedicalCode", remote_side=[id], back_populates="children")
    children = relationship("MedicalCode", back_populates="parent")

    __table_args__ = (
        UniqueConstraint("system_id", "code", name="uq_medical_code_system_code"),
        Index("ix_medical_codes_system_category", "system_id", "is_category"),
    )
