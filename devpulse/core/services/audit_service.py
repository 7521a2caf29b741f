"""
Audit trail service.

Every security-relevant action (role changes, settings updates, sensitive
data access, exports and deletions) is written to the audit log.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from ..logging import get_logger
from ..models.tortoise_models import AuditLog

logger = get_logger("services.audit")


class AuditService:
    """Audit service using Tortoise ORM directly."""

    async def log(
        self,
        user_id: Optional[Union[UUID, str]],
        action: str,
        entity_type: str,
        entity_id: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """Record an audit entry."""
        entry = await AuditLog.create(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            description=description,
            metadata=metadata,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(
            "Audit entry recorded",
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            user_id=str(user_id) if user_id else None,
        )
        return entry

    async def list_logs(
        self,
        page: int = 1,
        limit: int = 50,
        user_id: Optional[UUID] = None,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """List audit entries, newest first, with pagination metadata."""
        query = AuditLog.all()
        if user_id:
            query = query.filter(user_id=user_id)
        if action:
            query = query.filter(action=action)
        if entity_type:
            query = query.filter(entity_type=entity_type)
        if start_date:
            query = query.filter(created_at__gte=start_date)
        if end_date:
            query = query.filter(created_at__lte=end_date)

        total = await query.count()
        entries: List[AuditLog] = (
            await query.order_by("-created_at").offset((page - 1) * limit).limit(limit)
        )
        return {
            "logs": [serialize_audit_log(entry) for entry in entries],
            "pagination": {
                "page": page,
                "limit": limit,
                "totalCount": total,
                "totalPages": (total + limit - 1) // limit if limit else 0,
            },
        }


def serialize_audit_log(entry: AuditLog) -> Dict[str, Any]:
    """Shape an audit entry for API responses."""
    return {
        "id": str(entry.id),
        "action": entry.action,
        "entityType": entry.entity_type,
        "entityId": entry.entity_id,
        "description": entry.description,
        "metadata": entry.metadata,
        "userId": str(entry.user_id) if entry.user_id else None,
        "ipAddress": entry.ip_address,
        "userAgent": entry.user_agent,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }
