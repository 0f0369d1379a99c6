import logging
from typing import Any, Dict, List

from pymongo.database import Database

from irati import policy
from irati.assignments import AssignmentRegistry
from irati.database import INTERVIEWS, create_document, to_object_id, utcnow
from irati.errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from irati.policy import AuthContext
from irati.schemas import Interview, InterviewIn, InterviewUpdate, from_doc

logger = logging.getLogger(__name__)


class InterviewBook:
    """Interviews between a member and their monitor."""

    def __init__(self, db: Database):
        self.db = db
        self.assignments = AssignmentRegistry(db)

    def get(self, interview_id: str) -> Interview:
        doc = self.db[INTERVIEWS].find_one({"_id": to_object_id(interview_id)})
        if not doc:
            raise NotFoundError(f"Interview {interview_id} not found")
        return from_doc(Interview, doc)

    def _check_parties(self, ctx: AuthContext, socio_id: str, monitor_id: str) -> None:
        # Managers may pair anyone; monitors book themselves with their own members
        if ctx.is_manager:
            return
        if monitor_id != ctx.user_id:
            raise PermissionDeniedError("Monitors can only schedule their own interviews")
        if socio_id not in self.assignments.assigned_member_ids(ctx.user_id):
            raise PermissionDeniedError("This member is not assigned to you")

    def schedule(self, ctx: AuthContext, payload: InterviewIn) -> Interview:
        policy.require(ctx, "interview.create")
        if not payload.socio_id or not payload.monitor_id or payload.scheduled_date is None:
            raise InvalidRequestError("Member, monitor and date are required")
        self._check_parties(ctx, payload.socio_id, payload.monitor_id)

        interview_id = create_document(self.db, INTERVIEWS, payload.model_dump())
        logger.info("Interview %s scheduled for member %s with monitor %s", interview_id, payload.socio_id, payload.monitor_id)
        return self.get(interview_id)

    def update(self, ctx: AuthContext, interview_id: str, payload: InterviewUpdate) -> Interview:
        current = self.get(interview_id)
        policy.require(ctx, "interview.update", owner_id=current.monitor_id)
        changes = payload.model_dump(exclude_unset=True)
        if any(changes.get(k, "") is None for k in ("socio_id", "monitor_id", "scheduled_date", "status")):
            raise InvalidRequestError("Member, monitor, date and status cannot be cleared")
        if "socio_id" in changes or "monitor_id" in changes:
            self._check_parties(
                ctx,
                changes.get("socio_id", current.socio_id),
                changes.get("monitor_id", current.monitor_id),
            )
        changes["updated_at"] = utcnow()
        self.db[INTERVIEWS].update_one({"_id": to_object_id(interview_id)}, {"$set": changes})
        logger.info("Interview %s updated by %s", interview_id, ctx.user_id)
        return self.get(interview_id)

    def delete(self, ctx: AuthContext, interview_id: str) -> None:
        policy.require(ctx, "interview.delete")
        self.get(interview_id)
        self.db[INTERVIEWS].delete_one({"_id": to_object_id(interview_id)})
        logger.info("Interview %s deleted", interview_id)

    def list_interviews(self, ctx: AuthContext) -> List[Interview]:
        q: Dict[str, Any] = {}
        if ctx.role == policy.MONITOR:
            q["monitor_id"] = ctx.user_id
        elif not ctx.is_manager:
            q["socio_id"] = ctx.user_id
        return [from_doc(Interview, d) for d in self.db[INTERVIEWS].find(q).sort("scheduled_date", 1)]
