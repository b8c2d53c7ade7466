"""
User Repository

``(:User)`` nodes for both sign-in methods. Lookups used for credential
checks return ``UserInDB`` (with the password hash); everything else
returns ``User``, read through a projection that never touches credentials.
"""

from typing import Any

from teoverse.models.user import AuthProvider, User, UserCreate, UserInDB
from teoverse.repositories.base import BaseRepository

USER_SAFE_FIELDS = ".id, .email, .display_name, .avatar_url, .is_active, .auth_provider, .last_login, .created_at, .updated_at"


class UserRepository(BaseRepository[User]):

    @property
    def node_label(self) -> str:
        return "User"

    @property
    def model_class(self) -> type[User]:
        return User

    async def _create(self, properties: dict[str, Any]) -> UserInDB | None:
        now = self._now().isoformat()
        properties = {
            "id": self._generate_id(),
            "is_active": True,
            "created_at": now,
            "updated_at": now,
            **properties,
        }
        if properties.pop("logged_in", False):
            properties["last_login"] = now

        # MERGE on the new id makes a replayed create a no-op
        result = await self.client.execute_single(
            "MERGE (u:User {id: $id}) ON CREATE SET u = $props RETURN u {.*} AS user",
            {"id": properties["id"], "props": properties},
        )
        if result and result.get("user"):
            return UserInDB.model_validate(result["user"])
        return None

    async def _find_with_credentials(self, where: str, params: dict[str, Any]) -> UserInDB | None:
        result = await self.client.execute_single(f"MATCH (u:User) WHERE {where} RETURN u {{.*}} AS user", params)
        if result and result.get("user"):
            return UserInDB.model_validate(result["user"])
        return None

    # =========================================================================
    # Local accounts
    # =========================================================================

    async def create(self, data: UserCreate, password_hash: str) -> UserInDB:
        """Create an email/password user. ``data.password`` is never stored."""
        user = await self._create({
            "email": data.email,
            "display_name": data.display_name,
            "avatar_url": data.avatar_url,
            "password_hash": password_hash,
            "auth_provider": AuthProvider.LOCAL.value,
        })
        if user is None:
            raise RuntimeError("Failed to create user: no record returned")
        self.logger.info("user_created", user_id=user.id)
        return user

    async def get_by_id(self, entity_id: str) -> User | None:
        result = await self.client.execute_single(
            f"MATCH (u:User {{id: $id}}) RETURN u {{{USER_SAFE_FIELDS}}} AS user",
            {"id": entity_id},
        )
        if result and result.get("user"):
            return self._to_model(result["user"])
        return None

    async def get_by_email(self, email: str) -> UserInDB | None:
        """Case-insensitive; the result carries the password hash, so keep it out of responses."""
        return await self._find_with_credentials("toLower(u.email) = toLower($email)", {"email": email})

    async def email_exists(self, email: str) -> bool:
        result = await self.client.execute_single(
            "MATCH (u:User) WHERE toLower(u.email) = toLower($email) RETURN count(u) > 0 AS exists",
            {"email": email},
        )
        return bool(result and result.get("exists"))

    async def record_login(self, user_id: str) -> None:
        await self.client.execute(
            "MATCH (u:User {id: $id}) SET u.last_login = $now",
            {"id": user_id, "now": self._now().isoformat()},
        )

    # =========================================================================
    # Google Sign-In
    # =========================================================================

    async def get_by_google_id(self, google_id: str) -> UserInDB | None:
        return await self._find_with_credentials("u.google_id = $google_id", {"google_id": google_id})

    async def link_google_account(self, user_id: str, google_id: str) -> bool:
        """Attach a Google account (its ``sub``) to an existing user."""
        result = await self.client.execute_single(
            """
            MATCH (u:User {id: $id})
            SET u.google_id = $google_id, u.google_linked_at = $now, u.updated_at = $now
            RETURN u.id AS id
            """,
            {"id": user_id, "google_id": google_id, "now": self._now().isoformat()},
        )
        linked = bool(result and result.get("id") == user_id)
        if linked:
            self.logger.info("google_account_linked", user_id=user_id)
        return linked

    async def create_google_user(
        self,
        email: str,
        display_name: str | None,
        avatar_url: str | None,
        google_id: str,
        password_hash: str,
    ) -> UserInDB:
        """
        Create a user on first Google sign-in.

        ``password_hash`` hashes a random, discarded password so the account
        cannot be used with password login.
        """
        user = await self._create({
            "email": email,
            "display_name": display_name,
            "avatar_url": avatar_url,
            "password_hash": password_hash,
            "auth_provider": AuthProvider.GOOGLE.value,
            "google_id": google_id,
            "google_linked_at": self._now().isoformat(),
            "logged_in": True,
        })
        if user is None:
            raise RuntimeError(f"Failed to create Google user for google_id={google_id}")
        self.logger.info("google_user_created", user_id=user.id)
        return user
