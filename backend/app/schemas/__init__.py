from .coding import CodeSystemUpsert, CodeSystemResponse, MedicalCodeInput, BulkImportCodesRequest
from .occupation import (
    CBOGroupInput, OccupationInput, OccupationResponse, JobRoleCreate, JobRoleResponse,
    BatchImportRequest, AssignRoleRequest, CapabilityEvaluationCreate, CapabilityEvaluationResponse
)

__all__ = [
    "CodeSystemUpsert", "CodeSystemResponse", "MedicalCodeInput", "BulkImportCodesRequest",
    "CBOGroupInput", "OccupationInput", "OccupationResponse", "JobRoleCreate", "JobRoleResponse",
    "BatchImportRequest", "AssignRoleRequest", "CapabilityEvaluationCreate", "CapabilityEvaluationResponse"
]
