"""
User endpoints: profiles, settings, roles and the data lifecycle.

A user may always act on their own record. Acting on someone else's record
requires the ``admin:users`` permission, except for data export, which team
leads may also request for their members.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from ...core.auth.roles import Permissions, UserRole
from ...core.auth.tortoise_models import User
from ...core.dependencies import (
    get_current_user,
    get_role_service,
    get_user_service,
    require_permission,
)
from ...core.errors import ErrorCode, create_app_error
from ...core.logging import SecurityEventType, get_logger, security_logger
from ...core.services import (
    DataDeletionService,
    DataExportService,
    RoleService,
    UserService,
)
from ...core.services.user_service import serialize_settings, serialize_user
from ..models import created, success

router = APIRouter(prefix="/users", tags=["users"])
logger = get_logger("api.users")


async def _require_self_or_admin(
    user_id: UUID, user: User, roles: RoleService
) -> None:
    if str(user_id) == str(user.id):
        return
    if not await roles.has_permission(user.id, Permissions.ADMIN_USERS):
        security_logger.log_security_event(
            SecurityEventType.ACCESS_DENIED,
            user_id=str(user.id),
            details={"subject": str(user_id)},
        )
        raise create_app_error(
            ErrorCode.FORBIDDEN, "Not allowed to access this user's data"
        )


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(require_permission(Permissions.ADMIN_USERS)),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    return success(await users.list_users(page, limit))


@router.get("/{user_id}")
async def get_user(
    user_id: UUID,
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    await _require_self_or_admin(user_id, user, roles)
    found = await users.get_user_with_settings(user_id)
    if found is None:
        raise create_app_error(ErrorCode.NOT_FOUND, "User not found")
    target, settings = found
    return success({**serialize_user(target), "settings": serialize_settings(settings)})


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


@router.patch("/{user_id}")
async def update_user(
    user_id: UUID,
    update: ProfileUpdate,
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    await _require_self_or_admin(user_id, user, roles)
    updated = await users.update_profile(user_id, update.model_dump(exclude_unset=True))
    return success(serialize_user(updated))


@router.get("/{user_id}/settings")
async def get_settings(
    user_id: UUID,
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    await _require_self_or_admin(user_id, user, roles)
    if await users.get_user(user_id) is None:
        raise create_app_error(ErrorCode.NOT_FOUND, "User not found")
    return success(serialize_settings(await users.get_or_create_settings(user_id)))


@router.patch("/{user_id}/settings")
async def update_settings(
    user_id: UUID,
    changes: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    """Apply a partial settings update; unknown keys are rejected."""
    await _require_self_or_admin(user_id, user, roles)
    settings = await users.update_user_settings(user_id, changes)
    return success(serialize_settings(settings))


@router.post("/{user_id}/settings/sync")
async def sync_settings(
    user_id: UUID,
    incoming: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    """
    Merge settings from another device.

    Only the owner may sync; the newest ``syncTimestamp`` wins.
    """
    if str(user_id) != str(user.id):
        raise create_app_error(
            ErrorCode.FORBIDDEN, "Settings can only be synced by their owner"
        )
    settings, applied = await users.sync_settings(user_id, incoming)
    return success({"settings": serialize_settings(settings), "applied": applied})


class RoleUpdate(BaseModel):
    role: UserRole


@router.put("/{user_id}/role")
async def update_role(
    user_id: UUID,
    update: RoleUpdate,
    user: User = Depends(require_permission(Permissions.ADMIN_USERS)),
    roles: RoleService = Depends(get_role_service),
) -> Dict[str, Any]:
    if str(user_id) == str(user.id) and update.role != UserRole.ADMINISTRATOR:
        raise create_app_error(
            ErrorCode.BAD_REQUEST, "Administrators cannot demote themselves"
        )
    updated = await roles.assign_role(user_id, update.role, actor_id=user.id)
    security_logger.log_security_event(
        SecurityEventType.ROLE_CHANGED,
        user_id=str(user.id),
        details={"subject": str(user_id), "role": update.role.value},
    )
    return success(serialize_user(updated))


class ExportRequest(BaseModel):
    entityTypes: Optional[List[str]] = None
    format: Literal["json", "csv", "pdf"] = "json"
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    includePersonalData: bool = True
    includeRepositoryData: bool = True


@router.post("/{user_id}/data-export")
async def export_data(
    user_id: UUID,
    request: ExportRequest,
    user: User = Depends(get_current_user),
) -> Any:
    """Export a user's data as JSON or CSV, or queue a PDF export."""
    date_range = None
    if request.startDate and request.endDate:
        date_range = (request.startDate, request.endDate)
    result = await DataExportService().export_user_data(
        user_id,
        user.id,
        entity_types=request.entityTypes,
        format=request.format,
        date_range=date_range,
        include_personal_data=request.includePersonalData,
        include_repository_data=request.includeRepositoryData,
    )
    if "jobId" in result:
        return created(result)
    return success(result)


class DeletionRequest(BaseModel):
    deleteType: Literal["soft", "hard"] = "soft"
    reason: Optional[str] = None
    exportBeforeDelete: bool = True
    entityTypes: Optional[List[str]] = None


class ScheduledDeletionRequest(DeletionRequest):
    scheduledDate: datetime = Field(..., description="When the deletion runs")


@router.post("/{user_id}/data-deletion")
async def delete_data(
    user_id: UUID,
    request: DeletionRequest,
    user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Delete or anonymise a user's data now."""
    result = await DataDeletionService().delete_user_data(
        user_id,
        user.id,
        delete_type=request.deleteType,
        reason=request.reason,
        export_before_delete=request.exportBeforeDelete,
        entity_types=request.entityTypes,
    )
    return success(result)


@router.put("/{user_id}/data-deletion")
async def schedule_data_deletion(
    user_id: UUID,
    request: ScheduledDeletionRequest,
    user: User = Depends(get_current_user),
) -> Any:
    """Schedule a deletion for a future date."""
    job = await DataDeletionService().schedule_deletion(
        user_id,
        user.id,
        request.scheduledDate,
        delete_type=request.deleteType,
        reason=request.reason,
        export_before_delete=request.exportBeforeDelete,
        entity_types=request.entityTypes,
    )
    logger.info(
        "Data deletion scheduled",
        user_id=str(user_id),
        requested_by=str(user.id),
        scheduled_date=request.scheduledDate.isoformat(),
    )
    return created(
        {
            "jobId": str(job.id),
            "scheduledDate": request.scheduledDate.isoformat(),
            "deleteType": request.deleteType,
            "status": job.status,
        }
    )
