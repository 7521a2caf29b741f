"""Application data mode: live GitHub data or a seeded mock data set."""

from typing import Any, Dict, Optional, Union
from uuid import UUID

from ..config import get_config
from ..errors import ErrorCode, create_app_error
from ..logging import get_logger
from ..models.tortoise_models import AppMode, AppModeType, MockDataSet
from .audit_service import AuditService

logger = get_logger("services.app_mode")


class AppModeService:
    """The application keeps a single ``AppMode`` row."""

    def __init__(self, audit_service: Optional[AuditService] = None) -> None:
        self.audit = audit_service or AuditService()

    async def get_mode(self) -> AppMode:
        mode = await AppMode.first()
        if mode is None:
            default = (
                AppModeType.MOCK if get_config().features.mock_mode else AppModeType.LIVE
            )
            mode = await AppMode.create(mode=default)
        return mode

    async def is_mock_mode(self) -> bool:
        mode = await self.get_mode()
        return mode.mode != AppModeType.LIVE

    async def get_mock_data_set(self) -> Optional[MockDataSet]:
        mode = await self.get_mode()
        if mode.mock_data_set_id is None:
            return None
        return await MockDataSet.get_or_none(id=mode.mock_data_set_id)

    async def set_mode(
        self,
        mode: AppModeType,
        mock_data_set_id: Optional[Union[UUID, str]] = None,
        user_id: Optional[Union[UUID, str]] = None,
    ) -> AppMode:
        """Switch modes; a mock data set may only be attached outside LIVE."""
        if mock_data_set_id is not None:
            if mode == AppModeType.LIVE:
                raise create_app_error(
                    ErrorCode.BAD_REQUEST, "Live mode does not use a mock data set"
                )
            if not await MockDataSet.exists(id=mock_data_set_id):
                raise create_app_error(ErrorCode.NOT_FOUND, "Mock data set not found")

        current = await self.get_mode()
        previous = current.mode
        current.mode = mode
        current.mock_data_set_id = mock_data_set_id
        await current.save()

        await self.audit.log(
            user_id,
            "UPDATE_APP_MODE",
            "APP_MODE",
            str(current.id),
            f"Application mode changed to {mode.value}",
            metadata={
                "previousMode": getattr(previous, "value", previous),
                "newMode": mode.value,
                "mockDataSetId": str(mock_data_set_id) if mock_data_set_id else None,
            },
        )
        logger.info("Application mode changed", mode=mode.value)
        return current


def serialize_app_mode(mode: AppMode) -> Dict[str, Any]:
    return {
        "id": str(mode.id),
        "mode": getattr(mode.mode, "value", mode.mode),
        "mockDataSetId": str(mode.mock_data_set_id) if mode.mock_data_set_id else None,
        "enabledFeatures": mode.enabled_features,
        "updatedAt": mode.updated_at.isoformat() if mode.updated_at else None,
    }
