from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum

from app.models.occupation import StratumLevel


class StratumEnum(str, Enum):
    S1 = "S1"
    S2 = "S2"
    S3 = "S3"
    S4 = "S4"
    S5 = "S5"
    S6 = "S6"
    S7 = "S7"
    S8 = "S8"


class CBOGroupInput(BaseModel):
    code: str
    name: str
    level: int = Field(ge=1, le=4)
    parent_code: Optional[str] = None

    @model_validator(mode='after')
    def root_has_no_parent(self):
        if self.level == 1 and self.parent_code:
            raise ValueError('Grande Grupo (nível 1) não tem pai')
        return self


class OccupationInput(BaseModel):
    code: str
    title: str
    description: Optional[str] = None
    group_code: Optional[str] = None
    synonyms: Optional[List[str]] = None


class JobRoleCreate(BaseModel):
    title: str
    required_min_stratum: StratumEnum
    required_max_stratum: Optional[StratumEnum] = None
    occupation_code: Optional[str] = None
    description: Optional[str] = None
    tasks: Optional[str] = None
    capabilities: Optional[Dict[str, float]] = None

    @field_validator('title')
    @classmethod
    def title_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Título da função é obrigatório')
        return v.strip()

    @field_validator('capabilities')
    @classmethod
    def weights_in_range(cls, v: Optional[Dict[str, float]]) -> Optional[Dict[str, float]]:
        if v:
            for name, weight in v.items():
                if weight < 0 or weight > 1:
                    raise ValueError(f"Peso da capacidade '{name}' deve estar entre 0 e 1")
        return v


class JobRoleResponse(BaseModel):
    id: int
    title: str
    occupation_id: Optional[int] = None
    required_min_stratum: StratumLevel
    required_max_stratum: Optional[StratumLevel] = None
    description: Optional[str] = None
    capabilities: Optional[Dict[str, float]] = None
    active: bool

    class Config:
        from_attributes = True


class BatchImportRequest(BaseModel):
    groups: List[CBOGroupInput] = []
    occupations: List[OccupationInput] = []
    roles: List[JobRoleCreate] = []


class AssignRoleRequest(BaseModel):
    user_id: str
    job_role_id: int


class CapabilityEvaluationCreate(BaseModel):
    subject_user_id: str
    evaluator_user_id: str
    job_role_id: Optional[int] = None
    stratum_assessed: Optional[StratumEnum] = None
    potential_stratum: Optional[StratumEnum] = None
    time_span_months: Optional[int] = Field(default=None, ge=0)
    evidence: Optional[str] = None
    gaps: Optional[Dict[str, Any]] = None
    recommendations: Optional[str] = None

    @model_validator(mode='after')
    def stratum_or_time_span(self):
        if self.stratum_assessed is None and self.time_span_months is None:
            raise ValueError('Informe o estrato avaliado ou o time-span em meses')
        return self


class CapabilityEvaluationResponse(BaseModel):
    id: int
    subject_user_id: str
    evaluator_user_id: str
    job_role_id: Optional[int] = None
    stratum_assessed: StratumLevel
    potential_stratum: Optional[StratumLevel] = None
    time_span_months: Optional[int] = None
    gaps: Optional[Dict[str, Any]] = None
    capability_scores: Optional[Dict[str, float]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OccupationResponse(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str] = None
    group_id: Optional[int] = None
    synonyms: Optional[List[str]] = None

    class Config:
        from_attributes = True
