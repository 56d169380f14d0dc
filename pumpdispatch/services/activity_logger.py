"""
Records PIN logins and unhandled request failures in the activity log
"""

import logging
from fastapi import Request
from sqlalchemy.orm import Session
from typing import Optional

from pumpdispatch.models.activity_log import ActivityLog
from pumpdispatch.utils.error_handler import get_client_ip

logger = logging.getLogger(__name__)

class ActivityLogger:

    def __init__(self, db: Session):
        self.db = db

    async def record(
        self,
        request: Request,
        status_code: int,
        actor: Optional[dict] = None,
        error_message: Optional[str] = None
    ) -> Optional[ActivityLog]:
        """
        Store one entry for the request.

        ``actor`` is the claims dict of the caller when known. A failure to
        write the entry is logged and swallowed so it never changes the
        response of the request being recorded.
        """
        actor = actor or {}
        entry = ActivityLog(
            endpoint=str(request.url.path),
            method=request.method,
            status_code=status_code,
            actor_role=actor.get("role"),
            actor_id=actor.get("id"),
            actor_name=actor.get("name"),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            error_message=error_message
        )
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            return entry
        except Exception as e:
            logger.error(f"Failed to record activity for {request.method} {request.url.path}: {e}")
            self.db.rollback()
            return None

    def recent(self, limit: int = 100, failures_only: bool = False) -> list[ActivityLog]:
        query = self.db.query(ActivityLog)
        if failures_only:
            query = query.filter(ActivityLog.status_code >= 400)
        return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
