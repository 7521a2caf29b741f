"""Repository records mirrored from GitHub."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from ..logging import get_logger
from ..models.tortoise_models import Commit, Issue, PullRequest, Repository, TeamMember
from ..auth.tortoise_models import User

logger = get_logger("services.repositories")

UserId = Union[UUID, str]


def serialize_repository(repository: Repository) -> Dict[str, Any]:
    return {
        "id": str(repository.id),
        "githubId": repository.github_id,
        "name": repository.name,
        "fullName": repository.full_name,
        "isPrivate": repository.is_private,
        "description": repository.description,
        "defaultBranch": repository.default_branch,
        "language": repository.language,
        "lastSyncedAt": repository.last_synced_at.isoformat()
        if repository.last_synced_at
        else None,
    }


class RepositoryService:
    async def upsert_from_github(
        self, data: Dict[str, Any], owner_id: UserId
    ) -> Repository:
        """Insert or refresh a repository from a GitHub API payload."""
        repository, created = await Repository.update_or_create(
            github_id=data["id"],
            defaults={
                "name": data["name"],
                "full_name": data["full_name"],
                "owner_id": owner_id,
                "is_private": bool(data.get("private", False)),
                "description": data.get("description"),
                "default_branch": data.get("default_branch") or "main",
                "language": data.get("language"),
            },
        )
        if created:
            logger.info("Repository registered", full_name=repository.full_name)
        return repository

    async def get(self, repository_id: UserId) -> Optional[Repository]:
        return await Repository.get_or_none(id=repository_id)

    async def get_by_full_name(self, full_name: str) -> Optional[Repository]:
        return await Repository.get_or_none(full_name=full_name)

    async def list_accessible(self, user_id: UserId) -> List[Repository]:
        """Repositories the user owns or sees through a team."""
        team_ids = await TeamMember.filter(user_id=user_id).values_list(
            "team_id", flat=True
        )
        owned = await Repository.filter(owner_id=user_id)
        shared = (
            await Repository.filter(teams__team_id__in=list(team_ids)).distinct()
            if team_ids
            else []
        )
        seen = {}
        for repository in [*owned, *shared]:
            seen[repository.id] = repository
        return list(seen.values())

    async def contributors(self, repository_id: UserId) -> List[User]:
        """Users with commits, pull requests or issues in the repository."""
        ids = set(
            await Commit.filter(
                repository_id=repository_id, author_id__isnull=False
            ).values_list("author_id", flat=True)
        )
        ids.update(
            await PullRequest.filter(repository_id=repository_id).values_list(
                "author_id", flat=True
            )
        )
        ids.update(
            await Issue.filter(repository_id=repository_id).values_list(
                "author_id", flat=True
            )
        )
        if not ids:
            return []
        return await User.filter(id__in=list(ids))

    async def mark_synced(self, repository: Repository, when: datetime) -> None:
        repository.last_synced_at = when
        await repository.save(update_fields=["last_synced_at", "updated_at"])
