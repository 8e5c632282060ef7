import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quotemaster import models

logger = logging.getLogger("quotemaster.audit")


def audit_event(
    action: str,
    user_id: Optional[int],
    payload: Dict[str, Any],
    *,
    db: Session,
    quotation_id: int | None = None,
    idempotency_key: str | None = None,
    request_id: str | None = None,
) -> Optional[int]:
    """
    Persist an audit event; if the DB write fails, log it instead.

    Call this after the business transaction has committed: it commits on its
    own, and a failure here never undoes the audited change.
    Returns the created audit log id when available.
    """
    try:
        if idempotency_key:
            existing = (
                db.query(models.AuditLog)
                .filter(models.AuditLog.idempotency_key == idempotency_key)
                .first()
            )
            if existing is not None:
                return existing.id

        log = models.AuditLog(
            action=action,
            user_id=user_id,
            quotation_id=quotation_id,
            payload_json=json.dumps(payload or {}, default=str),
            idempotency_key=idempotency_key,
            request_id=request_id,
        )
        db.add(log)
        db.commit()
        return log.id
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(
            "audit_write_failed",
            extra={"action": action, "user_id": user_id, "payload": payload, "error": str(exc)},
        )
        return None
