from typing import List, Optional
from fastapi import APIRouter, Depends

from norruva.core.audit import AuditLogger
from norruva.core.dependencies import get_audit_logger, get_current_user
from norruva.core.exceptions import NotFound
from norruva.core.permissions import Action, check_permission
from norruva.db.schema import AuditLog, User

router = APIRouter()


@router.get(
    "/",
    response_model=List[AuditLog],
    summary="List Audit Logs",
    tags=["Audit"]
)
def list_audit_logs(
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger)
):
    """Platform-wide trail, newest first. Admins, Auditors and Compliance Managers only."""
    check_permission(current_user, Action.AUDIT_VIEW)
    return audit.get_logs(user_id=user_id, action=action)


@router.get(
    "/{log_id}",
    response_model=AuditLog,
    summary="Get Audit Log",
    tags=["Audit"]
)
def get_audit_log(
    log_id: str,
    current_user: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger)
):
    check_permission(current_user, Action.AUDIT_VIEW)
    log = audit.get_log(log_id)
    if not log:
        raise NotFound("Audit log not found.")
    return log
