import logging
from typing import List, Optional

from pydantic import ValidationError
from pymongo.database import Database

from irati import policy
from irati.database import COURSES, ENROLLMENTS, create_document, to_object_id, utcnow
from irati.errors import InvalidRequestError, NotFoundError
from irati.policy import AuthContext
from irati.schemas import Course, CourseIn, CourseUpdate, from_doc
from irati.sessions import SessionStore
from irati.users import UserDirectory

logger = logging.getLogger(__name__)

UNASSIGNED = "Sin asignar"


class CourseRepository:
    def __init__(self, db: Database):
        self.db = db
        self.users = UserDirectory(db)

    def _instructor_name(self, instructor_id: Optional[str]) -> str:
        if not instructor_id:
            return UNASSIGNED
        if not self.users.has_role(instructor_id, policy.PROFESSOR):
            raise InvalidRequestError("The instructor must hold the professor role")
        return self.users.get_profile(instructor_id).name

    def get(self, course_id: str) -> Course:
        doc = self.db[COURSES].find_one({"_id": to_object_id(course_id)})
        if not doc:
            raise NotFoundError(f"Course {course_id} not found")
        return from_doc(Course, doc)

    def list_courses(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Course]:
        q = {}
        if category:
            q["category"] = category
        if status:
            q["status"] = status
        courses = [from_doc(Course, d) for d in self.db[COURSES].find(q).sort("start_date", 1)]
        if search:
            needle = search.strip().lower()
            courses = [
                c for c in courses
                if needle in c.title.lower() or needle in (c.description or "").lower()
            ]
        return courses

    def create(self, ctx: AuthContext, payload: CourseIn) -> Course:
        policy.require(ctx, "course.create")
        data = payload.model_dump(mode="json")
        data["instructor_name"] = self._instructor_name(payload.instructor_id)
        course_id = create_document(self.db, COURSES, data)
        logger.info("Course %s (%s) created by %s", course_id, payload.title, ctx.user_id)
        return self.get(course_id)

    def update(self, ctx: AuthContext, course_id: str, payload: CourseUpdate) -> Course:
        current = self.get(course_id)
        policy.require(ctx, "course.update", instructor_id=current.instructor_id)

        changes = payload.model_dump(exclude_unset=True)
        # Re-validate the merged course so cross-field bounds still hold
        try:
            merged = CourseIn.model_validate({**current.model_dump(), **changes})
        except ValidationError as exc:
            raise InvalidRequestError("; ".join(e["msg"] for e in exc.errors()))
        update = {k: v for k, v in merged.model_dump(mode="json").items() if k in changes}
        if "instructor_id" in changes:
            update["instructor_name"] = self._instructor_name(merged.instructor_id)
        update["updated_at"] = utcnow()

        self.db[COURSES].update_one({"_id": to_object_id(course_id)}, {"$set": update})
        logger.info("Course %s updated by %s: %s", course_id, ctx.user_id, sorted(changes))
        return self.get(course_id)

    def delete(self, ctx: AuthContext, course_id: str) -> None:
        policy.require(ctx, "course.delete")
        self.get(course_id)
        cleared = SessionStore(self.db).clear_sessions(ctx, course_id)
        self.db[ENROLLMENTS].delete_many({"course_id": course_id})
        self.db[COURSES].delete_one({"_id": to_object_id(course_id)})
        logger.info("Course %s deleted by %s with %d sessions", course_id, ctx.user_id, cleared)
