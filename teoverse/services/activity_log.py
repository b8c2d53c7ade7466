"""
TeoVerse - Activity Log Service

Records what a user did. The action being recorded has already happened,
so a failed write is logged and dropped rather than reported to the caller.
"""

import structlog
from neo4j.exceptions import DriverError, Neo4jError

from teoverse.models.activity import ActivityLog, ActivityType
from teoverse.repositories.activity_repository import ActivityLogRepository

logger = structlog.get_logger(__name__)


class ActivityLogService:

    def __init__(self, repo: ActivityLogRepository):
        self.repo = repo

    async def add_activity_log(
        self,
        user_id: str,
        activity_type: ActivityType,
        description: str,
    ) -> ActivityLog | None:
        try:
            entry = await self.repo.create(user_id, activity_type, description)
        except (Neo4jError, DriverError, RuntimeError) as e:
            logger.error(
                "activity_log_write_failed",
                user_id=user_id,
                activity_type=activity_type.value,
                error=str(e),
            )
            return None
        logger.debug("activity_logged", user_id=user_id, activity_type=activity_type.value)
        return entry

    async def get_recent_activity(self, user_id: str, count: int = 5) -> list[ActivityLog]:
        return await self.repo.get_recent(user_id, count)
