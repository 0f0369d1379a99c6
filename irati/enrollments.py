"""
Enrollment ledger.

One row per (user, course), guarded by a unique index: a second enrollment is
reported as DuplicateEnrollmentError. Capacity is advisory only; over-enrollment
is flagged by capacity_summary, never blocked.
"""

import logging
from typing import List

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from irati import policy
from irati.courses import CourseRepository
from irati.database import COURSES, ENROLLMENTS, to_object_id, utcnow
from irati.errors import DuplicateEnrollmentError, NotFoundError
from irati.policy import AuthContext
from irati.schemas import CapacitySummary, Course, Enrollment, EnrollmentView, from_doc
from irati.users import UserDirectory

logger = logging.getLogger(__name__)

ENROLLED = "enrolled"


class EnrollmentLedger:
    def __init__(self, db: Database):
        self.db = db
        self.courses = CourseRepository(db)
        self.users = UserDirectory(db)

    def get(self, enrollment_id: str) -> Enrollment:
        doc = self.db[ENROLLMENTS].find_one({"_id": to_object_id(enrollment_id)})
        if not doc:
            raise NotFoundError(f"Enrollment {enrollment_id} not found")
        return from_doc(Enrollment, doc)

    def enroll(self, ctx: AuthContext, course_id: str, user_id: str) -> Enrollment:
        policy.require(ctx, "enrollment.create", owner_id=user_id)
        course = self.courses.get(course_id)
        doc = {"user_id": user_id, "course_id": course.id, "status": ENROLLED, "enrolled_at": utcnow()}
        try:
            res = self.db[ENROLLMENTS].insert_one(doc)
        except DuplicateKeyError:
            logger.info("User %s already enrolled in course %s", user_id, course_id)
            raise DuplicateEnrollmentError(f"Already enrolled in \"{course.title}\"")
        logger.info("User %s enrolled in course %s", user_id, course_id)
        return self.get(str(res.inserted_id))

    def withdraw(self, ctx: AuthContext, enrollment_id: str) -> Enrollment:
        enrollment = self.get(enrollment_id)
        policy.require(ctx, "enrollment.delete", owner_id=enrollment.user_id)
        self.db[ENROLLMENTS].delete_one({"_id": to_object_id(enrollment_id)})
        logger.info("Enrollment %s withdrawn (user %s, course %s)", enrollment_id, enrollment.user_id, enrollment.course_id)
        return enrollment

    def is_enrolled(self, course_id: str, user_id: str) -> bool:
        return self.db[ENROLLMENTS].find_one({"course_id": course_id, "user_id": user_id}) is not None

    def course_enrollments(self, course_id: str) -> List[Enrollment]:
        docs = self.db[ENROLLMENTS].find({"course_id": course_id}).sort("enrolled_at", 1)
        return [from_doc(Enrollment, d) for d in docs]

    def list_enrollments(self, ctx: AuthContext, course_id: str) -> List[EnrollmentView]:
        course = self.courses.get(course_id)
        enrollments = self.course_enrollments(course_id)
        if not policy.can(ctx, "enrollment.view", instructor_id=course.instructor_id):
            # members only see their own row
            enrollments = [e for e in enrollments if e.user_id == ctx.user_id]
        profiles = self.users.profiles_by_ids(e.user_id for e in enrollments)
        return [EnrollmentView(**e.model_dump(), profile=profiles.get(e.user_id)) for e in enrollments]

    def list_user_courses(self, user_id: str) -> List[Course]:
        course_ids = [to_object_id(e["course_id"]) for e in self.db[ENROLLMENTS].find({"user_id": user_id})]
        if not course_ids:
            return []
        docs = self.db[COURSES].find({"_id": {"$in": course_ids}}).sort("start_date", 1)
        return [from_doc(Course, d) for d in docs]

    def capacity_summary(self, course: Course) -> CapacitySummary:
        enrolled = self.db[ENROLLMENTS].count_documents({"course_id": course.id, "status": ENROLLED})
        return CapacitySummary(
            enrolled=enrolled,
            min_capacity=course.min_capacity,
            max_capacity=course.max_capacity,
            available_spots=max(course.max_capacity - enrolled, 0),
            over_capacity=enrolled > course.max_capacity,
            below_minimum=enrolled < course.min_capacity,
        )
