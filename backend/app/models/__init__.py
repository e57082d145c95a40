from .medical_code import CodeSystem, MedicalCode, CodeSystemKind, SexRestriction, CrossAsterisk
from .occupation import (
    CBOGroup, CBOLevel, Occupation, JobRole, UserJobRole,
    CapabilityEvaluation, StratumLevel
)
from .audit_log import AuditLog, AuditAction

__all__ = [
    "CodeSystem",
    "MedicalCode",
    "CodeSystemKind",
    "SexRestriction",
    "CrossAsterisk",
    "CBOGroup",
    "CBOLevel",
    "Occupation",
    "JobRole",
    "UserJobRole",
    "CapabilityEvaluation",
    "StratumLevel",
    "AuditLog",
    "AuditAction"
]
