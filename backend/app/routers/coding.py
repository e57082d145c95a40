import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import HierarchyError, NotFoundError
from app.models.medical_code import CodeSystemKind, SexRestriction
from app.schemas.coding import (
    CodeSystemKindEnum, SexRestrictionEnum, CodeSystemUpsert, CodeSystemResponse, BulkImportCodesRequest
)
from app.services.coding_service import CodingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/coding", tags=["Coding"])


def _kind(kind: Optional[CodeSystemKindEnum]) -> Optional[CodeSystemKind]:
    return CodeSystemKind(kind.value) if kind else None


def _error(status_code: int, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"success": False, "error": message})


@router.get("/search")
def search_codes(
    q: str = Query(..., min_length=1),
    kind: Optional[CodeSystemKindEnum] = None,
    chapter: Optional[str] = None,
    sex: Optional[SexRestrictionEnum] = None,
    categories_only: bool = False,
    limit: int = Query(25, ge=1, le=200),
    db: Session = Depends(get_db)
):
    """Busca códigos ativos por código, descrição ou sinônimos."""
    results = CodingService(db).search_codes(
        q,
        kind=_kind(kind),
        limit=limit,
        chapter=chapter,
        sex_restriction=SexRestriction(sex.value) if sex else None,
        categories_only=categories_only
    )
    return {"success": True, "data": results}


@router.get("/suggest")
def suggest_codes(
    text: str = Query(..., min_length=1),
    kind: Optional[CodeSystemKindEnum] = None,
    limit: int = Query(5, ge=1, le=15),
    db: Session = Depends(get_db)
):
    """Sugere códigos a partir de texto livre (queixa, anamnese)."""
    return {"success": True, "data": CodingService(db).suggest_codes(text, _kind(kind), limit)}


@router.get("/chapters")
def list_chapters(kind: Optional[CodeSystemKindEnum] = None, db: Session = Depends(get_db)):
    return {"success": True, "data": CodingService(db).list_chapters(_kind(kind))}


@router.get("/chapters/{chapter}")
def get_codes_by_chapter(
    chapter: str,
    kind: Optional[CodeSystemKindEnum] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": CodingService(db).get_codes_by_chapter(chapter, _kind(kind), limit)}


@router.get("/stats")
def get_code_stats(kind: Optional[CodeSystemKindEnum] = None, db: Session = Depends(get_db)):
    return {"success": True, "data": CodingService(db).get_code_stats(_kind(kind))}


@router.get("/codes/{id_or_code}")
def get_code_detail(id_or_code: str, db: Session = Depends(get_db)):
    """Detalhe do código com o caminho hierárquico até a raiz."""
    detail = CodingService(db).get_code_detail(id_or_code)
    if not detail:
        raise _error(404, "Código não encontrado")
    return {"success": True, "data": detail}


@router.delete("/codes/{code_id}")
def deactivate_code(code_id: int, db: Session = Depends(get_db)):
    """Desativa um código. Códigos nunca são removidos."""
    try:
        return {"success": True, "data": CodingService(db).deactivate_code(code_id)}
    except NotFoundError as e:
        db.rollback()
        raise _error(404, str(e))
    except Exception as e:
        db.rollback()
        logger.exception("Erro ao desativar código %s", code_id)
        raise _error(500, f"Erro ao desativar código: {str(e)}")


@router.post("/systems")
def upsert_code_system(payload: CodeSystemUpsert, db: Session = Depends(get_db)):
    try:
        system = CodingService(db).upsert_code_system(
            CodeSystemKind(payload.kind.value),
            payload.name,
            version=payload.version,
            description=payload.description,
            active=payload.active
        )
        db.commit()
        db.refresh(system)
        return {"success": True, "data": CodeSystemResponse.model_validate(system).model_dump(mode="json")}
    except Exception as e:
        db.rollback()
        logger.exception("Erro ao salvar sistema de códigos")
        raise _error(500, f"Erro ao salvar sistema de códigos: {str(e)}")


@router.post("/systems/{kind}/codes")
def bulk_import_codes(kind: CodeSystemKindEnum, payload: BulkImportCodesRequest, db: Session = Depends(get_db)):
    """Importa códigos num sistema existente (pais antes dos filhos)."""
    try:
        result = CodingService(db).bulk_import_codes(
            CodeSystemKind(kind.value),
            [c.model_dump() for c in payload.codes],
            version=payload.version,
            rebuild_search_text=payload.rebuild_search_text
        )
        return {"success": True, "data": result}
    except NotFoundError as e:
        db.rollback()
        raise _error(404, str(e))
    except HierarchyError as e:
        db.rollback()
        raise _error(400, str(e))
    except Exception as e:
        db.rollback()
        logger.exception("Erro ao importar códigos")
        raise _error(500, f"Erro ao importar códigos: {str(e)}")
