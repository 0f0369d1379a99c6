import logging
from typing import Dict, Iterable, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from irati import policy
from irati.database import PROFILES, USER_ROLES, to_object_id, utcnow
from irati.errors import DuplicateRoleError, NotFoundError
from irati.policy import AuthContext
from irati.schemas import Profile, Role, UserWithRole, from_doc

logger = logging.getLogger(__name__)


class UserDirectory:
    """Profiles and roles. Identity itself lives with the external auth provider."""

    def __init__(self, db: Database):
        self.db = db

    def get_profile(self, user_id: str) -> Profile:
        doc = self.db[PROFILES].find_one({"_id": to_object_id(user_id)})
        if not doc:
            raise NotFoundError(f"User {user_id} not found")
        return from_doc(Profile, doc)

    def profiles_by_ids(self, user_ids: Iterable[str]) -> Dict[str, Profile]:
        ids = {to_object_id(u) for u in user_ids}
        if not ids:
            return {}
        docs = self.db[PROFILES].find({"_id": {"$in": list(ids)}})
        return {str(d["_id"]): from_doc(Profile, d) for d in docs}

    def get_primary_role(self, user_id: str) -> Role:
        doc = self.db[USER_ROLES].find_one({"user_id": user_id})
        return doc["role"] if doc else policy.SOCIO

    def _roles_by_user(self) -> Dict[str, str]:
        roles: Dict[str, str] = {}
        for r in self.db[USER_ROLES].find({}, {"user_id": 1, "role": 1}):
            roles.setdefault(r["user_id"], r["role"])
        return roles

    def list_users(self, role: Optional[Role] = None) -> List[UserWithRole]:
        roles = self._roles_by_user()
        users = []
        for doc in self.db[PROFILES].find().sort("name", 1):
            uid = str(doc["_id"])
            user = from_doc(UserWithRole, {**doc, "role": roles.get(uid, policy.SOCIO)})
            if role is None or user.role == role:
                users.append(user)
        return users

    def has_role(self, user_id: str, role: Role) -> bool:
        if self.db[USER_ROLES].find_one({"user_id": user_id, "role": role}):
            return True
        # users without any role row are members
        return role == policy.SOCIO and self.db[USER_ROLES].count_documents({"user_id": user_id}) == 0

    def assign_role(self, ctx: AuthContext, user_id: str, role: Role) -> None:
        policy.require(ctx, "role.manage")
        self.get_profile(user_id)
        try:
            self.db[USER_ROLES].insert_one({"user_id": user_id, "role": role, "created_at": utcnow()})
        except DuplicateKeyError:
            raise DuplicateRoleError(f"User already holds the {role} role")
        logger.info("Role %s granted to user %s by %s", role, user_id, ctx.user_id)

    def remove_role(self, ctx: AuthContext, user_id: str, role: Role) -> None:
        policy.require(ctx, "role.manage")
        res = self.db[USER_ROLES].delete_one({"user_id": user_id, "role": role})
        if res.deleted_count == 0:
            raise NotFoundError(f"User {user_id} does not hold the {role} role")
        logger.info("Role %s removed from user %s by %s", role, user_id, ctx.user_id)

    def list_professors(self) -> List[Profile]:
        ids = self.db[USER_ROLES].distinct("user_id", {"role": policy.PROFESSOR})
        profiles = self.profiles_by_ids(ids)
        return sorted(profiles.values(), key=lambda p: p.name)
