"""Service layer for DevPulse."""

from .app_mode_service import AppModeService
from .audit_service import AuditService
from .data_access_service import DataAccessService
from .data_deletion_service import DataDeletionService
from .data_export_service import DataExportService
from .data_retention_service import DataRetentionService, RetentionPolicy
from .repository_service import RepositoryService
from .role_service import RoleService
from .sensitive_data_service import SensitiveDataService
from .system_settings_service import SystemSettingsService
from .team_service import TeamService
from .user_service import UserService

__all__ = [
    "AppModeService",
    "AuditService",
    "DataAccessService",
    "DataDeletionService",
    "DataExportService",
    "DataRetentionService",
    "RepositoryService",
    "RetentionPolicy",
    "RoleService",
    "SensitiveDataService",
    "SystemSettingsService",
    "TeamService",
    "UserService",
]
