"""
Activity Log Repository

Activity entries are standalone ``(:ActivityLog)`` nodes carrying the
owner's ``user_id`` rather than hanging off the passport, so a user's
history outlives the passport itself.
"""

from teoverse.models.activity import ActivityLog, ActivityType
from teoverse.repositories.base import BaseRepository

MAX_ACTIVITY_LIMIT = 100


class ActivityLogRepository(BaseRepository[ActivityLog]):

    @property
    def node_label(self) -> str:
        return "ActivityLog"

    @property
    def model_class(self) -> type[ActivityLog]:
        return ActivityLog

    async def create(self, user_id: str, activity_type: ActivityType, description: str) -> ActivityLog:
        query = """
        MERGE (l:ActivityLog {id: $id})
        ON CREATE SET
            l.user_id = $user_id,
            l.type = $type,
            l.description = $description,
            l.created_at = $now
        RETURN l {.*} AS entry
        """
        result = await self.client.execute_single(
            query,
            {
                "id": self._generate_id(),
                "user_id": user_id,
                "type": activity_type.value,
                "description": description,
                "now": self._now().isoformat(),
            },
        )
        entry = self._to_model(result.get("entry") if result else None)
        if entry is None:
            raise RuntimeError(f"Failed to write activity log for user_id={user_id}")
        return entry

    async def get_recent(self, user_id: str, count: int = 5) -> list[ActivityLog]:
        """Newest first, at most ``count`` entries."""
        count = min(max(1, count), MAX_ACTIVITY_LIMIT)
        query = """
        MATCH (l:ActivityLog {user_id: $user_id})
        RETURN l {.*} AS entry
        ORDER BY l.created_at DESC
        LIMIT $limit
        """
        results = await self.client.execute(query, {"user_id": user_id, "limit": count})
        return self._to_models([r["entry"] for r in results if r.get("entry")])
