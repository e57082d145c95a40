import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import HierarchyError, NotFoundError
from app.models.occupation import StratumLevel
from app.schemas.occupation import (
    OccupationResponse, JobRoleCreate, JobRoleResponse, BatchImportRequest,
    AssignRoleRequest, CapabilityEvaluationCreate, CapabilityEvaluationResponse
)
from app.services.occupation_capability_service import OccupationCapabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/occupations", tags=["Occupations"])


def _error(status_code: int, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"success": False, "error": message})


def _stratum(value) -> Optional[StratumLevel]:
    return StratumLevel(value.value) if value else None


@router.get("/search")
def search_occupations(
    q: str = Query(..., min_length=1),
    limit: int = Query(30, ge=1, le=200),
    db: Session = Depends(get_db)
):
    occupations = OccupationCapabilityService(db).search_occupations(q, limit)
    return {"success": True, "data": [OccupationResponse.model_validate(o).model_dump() for o in occupations]}


@router.get("/groups/tree")
def group_tree(depth: int = Query(3, ge=1, le=4), db: Session = Depends(get_db)):
    """Árvore CBO a partir dos Grandes Grupos."""
    return {"success": True, "data": OccupationCapabilityService(db).group_tree(depth)}


@router.post("/import")
def batch_import(payload: BatchImportRequest, db: Session = Depends(get_db)):
    """Importa grupos, ocupações e funções num único lote."""
    try:
        counts = OccupationCapabilityService(db).batch_import(
            groups=[g.model_dump() for g in payload.groups],
            occupations=[o.model_dump() for o in payload.occupations],
            roles=[
                {
                    **r.model_dump(),
                    "required_min_stratum": _stratum(r.required_min_stratum),
                    "required_max_stratum": _stratum(r.required_max_stratum)
                }
                for r in payload.roles
            ]
        )
        return {"success": True, "data": counts}
    except HierarchyError as e:
        db.rollback()
        raise _error(400, str(e))
    except Exception as e:
        db.rollback()
        logger.exception("Erro na importação em lote de ocupações")
        raise _error(500, f"Erro na importação: {str(e)}")


@router.post("/job-roles")
def create_job_role(payload: JobRoleCreate, db: Session = Depends(get_db)):
    try:
        role = OccupationCapabilityService(db).create_job_role(
            title=payload.title,
            required_min_stratum=_stratum(payload.required_min_stratum),
            required_max_stratum=_stratum(payload.required_max_stratum),
            occupation_code=payload.occupation_code,
            description=payload.description,
            tasks=payload.tasks,
            capabilities=payload.capabilities
        )
        db.commit()
        db.refresh(role)
        return {"success": True, "data": JobRoleResponse.model_validate(role).model_dump(mode="json")}
    except HierarchyError as e:
        db.rollback()
        raise _error(400, str(e))
    except Exception as e:
        db.rollback()
        logger.exception("Erro ao criar função")
        raise _error(500, f"Erro ao criar função: {str(e)}")


@router.post("/assignments")
def assign_user_role(payload: AssignRoleRequest, db: Session = Depends(get_db)):
    try:
        assignment = OccupationCapabilityService(db).assign_user_role(payload.user_id, payload.job_role_id)
        db.commit()
        return {
            "success": True,
            "data": {
                "id": assignment.id,
                "user_id": assignment.user_id,
                "job_role_id": assignment.job_role_id,
                "active": assignment.active
            }
        }
    except NotFoundError as e:
        db.rollback()
        raise _error(404, str(e))
    except Exception as e:
        db.rollback()
        logger.exception("Erro ao atribuir função ao usuário %s", payload.user_id)
        raise _error(500, f"Erro ao atribuir função: {str(e)}")


@router.post("/evaluations")
def create_evaluation(payload: CapabilityEvaluationCreate, db: Session = Depends(get_db)):
    """Registra uma avaliação de capacidade (imutável)."""
    try:
        evaluation = OccupationCapabilityService(db).evaluate_capability(
            subject_user_id=payload.subject_user_id,
            evaluator_user_id=payload.evaluator_user_id,
            stratum_assessed=_stratum(payload.stratum_assessed),
            potential_stratum=_stratum(payload.potential_stratum),
            time_span_months=payload.time_span_months,
            job_role_id=payload.job_role_id,
            evidence=payload.evidence,
            gaps=payload.gaps,
            recommendations=payload.recommendations
        )
        db.commit()
        db.refresh(evaluation)
        return {"success": True, "data": CapabilityEvaluationResponse.model_validate(evaluation).model_dump(mode="json")}
    except NotFoundError as e:
        db.rollback()
        raise _error(404, str(e))
    except ValueError as e:
        db.rollback()
        raise _error(400, str(e))
    except Exception as e:
        db.rollback()
        logger.exception("Erro ao registrar avaliação de %s", payload.subject_user_id)
        raise _error(500, f"Erro ao registrar avaliação: {str(e)}")


@router.get("/users/{user_id}/evaluations")
def list_user_evaluations(user_id: str, limit: int = Query(50, ge=1, le=200), db: Session = Depends(get_db)):
    evaluations = OccupationCapabilityService(db).list_user_evaluations(user_id, limit)
    return {
        "success": True,
        "data": [CapabilityEvaluationResponse.model_validate(e).model_dump(mode="json") for e in evaluations]
    }


@router.get("/users/{user_id}/matches")
def match_user_to_roles(user_id: str, limit: int = Query(20, ge=1, le=100), db: Session = Depends(get_db)):
    """Funções ranqueadas pela aderência ao estrato da última avaliação."""
    return {"success": True, "data": OccupationCapabilityService(db).match_user_to_roles(user_id, limit)}
