from typing import Any, Dict, List, Optional
from loguru import logger

from norruva.db.schema import AuditLog
from norruva.db.store import EntityStore

SYSTEM_ACTOR = "system"
GUEST_ACTOR = "guest"

_SENTINEL_ACTORS = (SYSTEM_ACTOR, GUEST_ACTOR)


class AuditLogger:
    """
    Best-effort, append-only audit trail.
    Every committed mutation calls `log_event`; a failed write is reported
    on the error channel but never rolls back or fails the caller.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def log_event(
        self,
        action: str,
        entity_id: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: str = SYSTEM_ACTOR,
    ) -> Optional[AuditLog]:
        try:
            # 'system' and 'guest' never exist in the user table
            if user_id not in _SENTINEL_ACTORS and user_id not in self.store.users:
                logger.warning(f"Audit log attempt for non-existent user: {user_id} ({action})")
                return None

            entry = AuditLog(
                user_id=user_id,
                action=action,
                entity_id=entity_id,
                details=details or {},
            )
            return self.store.audit_logs.append(entry)

        except Exception as e:
            logger.error(f"AUDIT LOG FAILED: {action} on {entity_id}: {e}")
            return None

    # --- Read helpers (newest first) ---

    def get_logs(self, user_id: Optional[str] = None, action: Optional[str] = None) -> List[AuditLog]:
        return list(reversed(self.store.audit_logs.list(user_id=user_id, action=action)))

    def get_logs_for_entity(self, entity_id: str) -> List[AuditLog]:
        return list(reversed(self.store.audit_logs.list(entity_id=entity_id)))

    def get_log(self, log_id: str) -> Optional[AuditLog]:
        return self.store.audit_logs.get(log_id)
