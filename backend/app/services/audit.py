"""
Append-only audit trail of who did what, from where.
"""
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.database import AuditLog as AuditLogDB, SessionLocal
from app.services import clock

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes audit rows through its own sessions.

    A failed audit write is logged and dropped; it never fails the request
    that triggered it.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def record(self, action: str, actor_id: Optional[str] = None, origin: Optional[str] = None,
               user_agent: Optional[str] = None, details: Optional[str] = None) -> bool:
        db = None
        try:
            db = self.session_factory()
            db.add(AuditLogDB(
                action=action,
                user_id=actor_id,
                ip_address=origin,
                user_agent=(user_agent or "")[:500] or None,
                details=details,
                created_at=clock.utcnow(),
            ))
            db.commit()
            return True
        except Exception as e:
            logger.exception(f"Failed to write audit log for '{action}': {e}")
            return False
        finally:
            # close() also rolls back anything left uncommitted
            if db is not None:
                db.close()
