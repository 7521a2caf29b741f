"""
Administration endpoints.

System settings, the application data mode, audit logs, data retention and
runtime performance counters. All routes require the administrator role;
switching the data mode additionally requires ``admin:mock_mode``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from ...core.auth.roles import Permissions
from ...core.auth.tortoise_models import User
from ...core.cache import get_cache
from ...core.circuit_breaker import get_all_circuit_breakers
from ...core.dependencies import (
    get_audit_service,
    get_jobs,
    require_admin,
    require_permission,
)
from ...core.jobs import JobManager
from ...core.logging import SecurityEventType, get_logger, security_logger
from ...core.models.tortoise_models import AppModeType
from ...core.services import (
    AppModeService,
    AuditService,
    DataRetentionService,
    SystemSettingsService,
)
from ...core.services.app_mode_service import serialize_app_mode
from ..models import success

router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)
logger = get_logger("api.admin")


@router.get("/settings")
async def get_settings(user: User = Depends(require_admin)) -> Dict[str, Any]:
    return success(await SystemSettingsService().get_all())


class SettingUpdate(BaseModel):
    key: str
    value: Any
    description: Optional[str] = None
    encrypted: bool = False


@router.put("/settings")
async def update_setting(
    update: SettingUpdate, user: User = Depends(require_admin)
) -> Dict[str, Any]:
    setting = await SystemSettingsService().set(
        update.key,
        update.value,
        user_id=user.id,
        description=update.description,
        encrypted=update.encrypted,
    )
    security_logger.log_security_event(
        SecurityEventType.CONFIGURATION_CHANGE,
        user_id=str(user.id),
        details={"key": update.key},
    )
    return success(
        {
            "key": setting.key,
            "encrypted": setting.is_encrypted,
            "description": setting.description,
        }
    )


@router.get("/app-mode")
async def get_app_mode(user: User = Depends(require_admin)) -> Dict[str, Any]:
    return success(serialize_app_mode(await AppModeService().get_mode()))


class AppModeUpdate(BaseModel):
    mode: AppModeType
    mockDataSetId: Optional[UUID] = None


@router.put("/app-mode")
async def update_app_mode(
    update: AppModeUpdate,
    user: User = Depends(require_permission(Permissions.ADMIN_MOCK_MODE)),
) -> Dict[str, Any]:
    mode = await AppModeService().set_mode(update.mode, update.mockDataSetId, user.id)
    security_logger.log_security_event(
        SecurityEventType.CONFIGURATION_CHANGE,
        user_id=str(user.id),
        details={"appMode": update.mode.value},
    )
    return success(serialize_app_mode(mode))


@router.get("/audit-logs")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user_id: Optional[UUID] = Query(None, alias="userId"),
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None, alias="entityType"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user: User = Depends(require_admin),
    audit: AuditService = Depends(get_audit_service),
) -> Dict[str, Any]:
    return success(
        await audit.list_logs(
            page=page,
            limit=limit,
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            start_date=start_date,
            end_date=end_date,
        )
    )


@router.get("/data-retention")
async def get_retention_policies(user: User = Depends(require_admin)) -> Dict[str, Any]:
    policies = await DataRetentionService().get_policies()
    return success({"policies": [p.model_dump() for p in policies]})


@router.put("/data-retention")
async def update_retention_policies(
    policies: List[Dict[str, Any]] = Body(..., embed=True),
    user: User = Depends(require_admin),
) -> Dict[str, Any]:
    updated = await DataRetentionService().update_policies(policies, user.id)
    return success({"policies": [p.model_dump() for p in updated]})


@router.post("/data-retention")
async def apply_retention_policies(
    entity_type: Optional[str] = Body(None, alias="entityType", embed=True),
    user: User = Depends(require_admin),
) -> Dict[str, Any]:
    """Delete rows that are older than their retention window."""
    results = await DataRetentionService().apply_policies(user.id, entity_type)
    logger.info("Retention policies applied", user_id=str(user.id), results=results)
    return success({"results": results})


@router.get("/performance")
async def get_performance(
    user: User = Depends(require_admin),
    jobs: JobManager = Depends(get_jobs),
) -> Dict[str, Any]:
    """Circuit breaker, cache and job queue counters."""
    return success(
        {
            "circuitBreakers": get_all_circuit_breakers(),
            "cache": await get_cache().get_stats(),
            "jobs": await jobs.get_stats(),
        }
    )
