import logging
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog, AuditAction

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = {"id": "system", "email": "system@local", "role": "SYSTEM"}


def record_audit(
    db: Session,
    action: AuditAction,
    entity_type: str,
    entity_key: Optional[Union[str, int]] = None,
    actor: Optional[Dict[str, str]] = None,
    description: Optional[str] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Registra auditoria dentro de um savepoint. Falhas são apenas logadas:
    a auditoria nunca derruba a operação principal.
    """
    actor = actor or SYSTEM_ACTOR
    try:
        with db.begin_nested():
            db.add(AuditLog(
                action=action,
                entity_type=entity_type,
                entity_key=str(entity_key) if entity_key is not None else None,
                actor_id=actor.get("id", SYSTEM_ACTOR["id"]),
                actor_email=actor.get("email"),
                actor_role=actor.get("role"),
                description=description,
                new_values=new_values
            ))
    except SQLAlchemyError:
        logger.exception("Falha ao registrar auditoria %s para %s:%s", action.value, entity_type, entity_key)
