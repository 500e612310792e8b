"""Role hierarchy and the privileged-role registry."""

import logging
from enum import Enum

from config import OWNER_USER_IDS

from .errors import InvalidInput, PermissionDenied, UpstreamUnavailable

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    OWNER = "owner"


_RANKS = {
    Role.USER: 0,
    Role.MODERATOR: 1,
    Role.ADMIN: 2,
    Role.SUPER_ADMIN: 3,
    Role.OWNER: 4,
}

# Config key holding each assignable role's members (JSON array)
ROLE_KEYS = {
    Role.SUPER_ADMIN: "super_admin_users",
    Role.ADMIN: "admin_users",
    Role.MODERATOR: "moderator_users",
}
OWNER_KEY = "owner_users"

ASSIGN_ATTEMPTS = 3


def rank(role: Role) -> int:
    return _RANKS[Role(role)]


def can_moderate(actor: Role, target: Role) -> bool:
    """Strictly higher rank only: nobody acts on a peer, a superior, or themselves."""
    return rank(actor) > rank(target)


def parse_role(text: str) -> Role:
    try:
        return Role((text or "").strip().lower())
    except ValueError:
        raise InvalidInput(f"Unknown role '{text}'. Valid roles: {', '.join(r.value for r in Role)}") from None


class RoleRegistry:
    """Membership of moderator/admin/super_admin, kept mutually exclusive.

    Reads always go to the store (never the config cache) so a role change is
    visible to the very next permission check.
    """

    def __init__(self, db, config_provider):
        self.db = db
        self.config = config_provider

    async def _owners(self) -> set[str]:
        return set(OWNER_USER_IDS) | set(await self.config.get_json_list(OWNER_KEY, fresh=True))

    async def members_of(self, role: Role) -> set[str]:
        role = Role(role)
        if role == Role.OWNER:
            return await self._owners()
        if role == Role.USER:
            raise InvalidInput("The user role has no membership list")
        return set(await self.config.get_json_list(ROLE_KEYS[role], fresh=True))

    async def all_roles(self) -> dict[Role, set[str]]:
        result = {Role.OWNER: await self._owners()}
        for role in (Role.SUPER_ADMIN, Role.ADMIN, Role.MODERATOR):
            result[role] = await self.members_of(role)
        return result

    async def role_of(self, identity: str) -> Role:
        identity = str(identity)
        if identity in await self._owners():
            return Role.OWNER
        for role in (Role.SUPER_ADMIN, Role.ADMIN, Role.MODERATOR):
            if identity in await self.members_of(role):
                return role
        return Role.USER

    async def _placement(self, identity: str) -> list[Role]:
        return [role for role in ROLE_KEYS if identity in await self.members_of(role)]

    async def assign(self, identity: str, role: Role) -> None:
        """Place ``identity`` in exactly the set for ``role`` (none for user).

        The three sets are rewritten in one store transaction and the result is
        re-read; a mismatch is retried a bounded number of times.
        """
        identity = str(identity)
        role = Role(role)
        if role == Role.OWNER:
            raise PermissionDenied("The owner role cannot be assigned")
        if identity in await self._owners():
            raise PermissionDenied("Owners cannot be reassigned")

        target_key = ROLE_KEYS.get(role)
        expected = [] if role == Role.USER else [role]
        for attempt in range(1, ASSIGN_ATTEMPTS + 1):
            await self.db.set_role_membership(identity, list(ROLE_KEYS.values()), target_key)
            self.config.invalidate()
            placement = await self._placement(identity)
            if placement == expected:
                logger.info("Role of %s set to %s", identity, role.value, extra={"target": identity})
                return
            logger.warning(
                "Role assignment for %s not observed (attempt %d/%d): found %s",
                identity,
                attempt,
                ASSIGN_ATTEMPTS,
                [r.value for r in placement],
            )
        raise UpstreamUnavailable(f"Could not confirm role change for {identity}; re-check roles before retrying")
