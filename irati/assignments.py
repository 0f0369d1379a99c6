import logging
from typing import Any, Dict, List

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from irati import policy
from irati.database import MONITOR_ASSIGNMENTS, to_object_id, utcnow
from irati.errors import DuplicateAssignmentError, InvalidRequestError, NotFoundError
from irati.policy import AuthContext
from irati.schemas import AssignmentIn, AssignmentView, MonitorAssignment, from_doc
from irati.users import UserDirectory

logger = logging.getLogger(__name__)


class AssignmentRegistry:
    """Which monitor looks after which member."""

    def __init__(self, db: Database):
        self.db = db
        self.users = UserDirectory(db)

    def get(self, assignment_id: str) -> MonitorAssignment:
        doc = self.db[MONITOR_ASSIGNMENTS].find_one({"_id": to_object_id(assignment_id)})
        if not doc:
            raise NotFoundError(f"Assignment {assignment_id} not found")
        return from_doc(MonitorAssignment, doc)

    def assign(self, ctx: AuthContext, payload: AssignmentIn) -> MonitorAssignment:
        policy.require(ctx, "assignment.manage")
        if not payload.monitor_id or not payload.socio_id:
            raise InvalidRequestError("Select a monitor and a member")
        if not self.users.has_role(payload.monitor_id, policy.MONITOR):
            raise InvalidRequestError(f"User {payload.monitor_id} is not a monitor")
        if not self.users.has_role(payload.socio_id, policy.SOCIO):
            raise InvalidRequestError(f"User {payload.socio_id} is not a member")

        doc = {
            "monitor_id": payload.monitor_id,
            "socio_id": payload.socio_id,
            "assigned_at": utcnow(),
            "notes": payload.notes,
        }
        try:
            res = self.db[MONITOR_ASSIGNMENTS].insert_one(doc)
        except DuplicateKeyError:
            logger.info("Member %s already assigned to monitor %s", payload.socio_id, payload.monitor_id)
            raise DuplicateAssignmentError("This member is already assigned to this monitor")
        logger.info("Member %s assigned to monitor %s", payload.socio_id, payload.monitor_id)
        return self.get(str(res.inserted_id))

    def unassign(self, ctx: AuthContext, assignment_id: str) -> MonitorAssignment:
        policy.require(ctx, "assignment.manage")
        assignment = self.get(assignment_id)
        self.db[MONITOR_ASSIGNMENTS].delete_one({"_id": to_object_id(assignment_id)})
        logger.info("Assignment %s removed", assignment_id)
        return assignment

    def list_assignments(self, ctx: AuthContext) -> List[AssignmentView]:
        q: Dict[str, Any] = {}
        if ctx.role == policy.MONITOR:
            q["monitor_id"] = ctx.user_id
        elif not ctx.is_manager:
            q["socio_id"] = ctx.user_id
        assignments = [from_doc(MonitorAssignment, d) for d in self.db[MONITOR_ASSIGNMENTS].find(q).sort("assigned_at", -1)]

        ids = {a.monitor_id for a in assignments} | {a.socio_id for a in assignments}
        profiles = self.users.profiles_by_ids(ids)
        return [
            AssignmentView(**a.model_dump(), monitor=profiles.get(a.monitor_id), socio=profiles.get(a.socio_id))
            for a in assignments
        ]

    def assigned_member_ids(self, monitor_id: str) -> List[str]:
        return [a["socio_id"] for a in self.db[MONITOR_ASSIGNMENTS].find({"monitor_id": monitor_id}, {"socio_id": 1})]
