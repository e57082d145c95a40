from pydantic import BaseModel, field_validator
from typing import List, Optional
from enum import Enum

from app.models.medical_code import CodeSystemKind


class CodeSystemKindEnum(str, Enum):
    CID10 = "CID10"
    CID11 = "CID11"
    CIAP2 = "CIAP2"
    NURSING = "NURSING"


class SexRestrictionEnum(str, Enum):
    MALE = "M"
    FEMALE = "F"


class CodeSystemUpsert(BaseModel):
    kind: CodeSystemKindEnum
    name: str
    version: Optional[str] = None
    description: Optional[str] = None
    active: bool = True

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Nome do sistema de códigos é obrigatório')
        return v.strip()


class CodeSystemResponse(BaseModel):
    id: int
    kind: CodeSystemKind
    name: str
    version: Optional[str] = None
    description: Optional[str] = None
    active: bool

    class Config:
        from_attributes = True


class MedicalCodeInput(BaseModel):
    code: str
    display: str
    description: Optional[str] = None
    parent_code: Optional[str] = None
    synonyms: Optional[List[str]] = None

    @field_validator('code', 'display')
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Código e descrição são obrigatórios')
        return v.strip()


class BulkImportCodesRequest(BaseModel):
    version: Optional[str] = None
    codes: List[MedicalCodeInput]
    rebuild_search_text: bool = False
