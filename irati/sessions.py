"""
Course sessions: the dated occurrences of a course.

Bulk generation writes the whole expanded schedule in one ordered
insert_many, and only for a course that has no sessions yet. Regenerating a
schedule means clearing it first.
"""

import logging
from typing import Any, Dict, Iterator, List

from pymongo.database import Database

from irati import policy
from irati.database import ATTENDANCE, COURSE_SESSIONS, create_document, to_object_id, utcnow
from irati.errors import InvalidRequestError, NotFoundError, SessionsAlreadyExistError
from irati.policy import AuthContext
from irati.scheduling import expand_schedule
from irati.schemas import Course, CourseSession, GenerationResult, SessionIn, SessionUpdate, from_doc

logger = logging.getLogger(__name__)


def _check_times(start_time: str, end_time: str) -> None:
    # zero-padded HH:MM compares chronologically as text
    if end_time <= start_time:
        raise InvalidRequestError("end_time must be after start_time")


class SessionStore:
    def __init__(self, db: Database):
        self.db = db

    def iter_sessions(self, course_id: str, include_cancelled: bool = True) -> Iterator[CourseSession]:
        q: Dict[str, Any] = {"course_id": course_id}
        if not include_cancelled:
            q["is_cancelled"] = {"$ne": True}
        cursor = self.db[COURSE_SESSIONS].find(q).sort([("session_date", 1), ("start_time", 1)])
        for doc in cursor:
            yield from_doc(CourseSession, doc)

    def list_sessions(self, course_id: str, include_cancelled: bool = True) -> List[CourseSession]:
        return list(self.iter_sessions(course_id, include_cancelled=include_cancelled))

    def count_sessions(self, course_id: str) -> int:
        return self.db[COURSE_SESSIONS].count_documents({"course_id": course_id})

    def get(self, session_id: str) -> CourseSession:
        doc = self.db[COURSE_SESSIONS].find_one({"_id": to_object_id(session_id)})
        if not doc:
            raise NotFoundError(f"Session {session_id} not found")
        return from_doc(CourseSession, doc)

    def generate_sessions(self, ctx: AuthContext, course: Course) -> GenerationResult:
        policy.require(ctx, "session.manage")
        if self.count_sessions(course.id):
            raise SessionsAlreadyExistError(
                "The course already has sessions; clear them before generating a new schedule"
            )

        drafts = expand_schedule(
            course.start_date,
            course.end_date,
            course.schedule_days,
            course.schedule_time,
            course.duration,
        )
        if not drafts:
            logger.info("No sessions to generate for course %s", course.id)
            return GenerationResult(created=0, sessions=[])

        now = utcnow()
        docs = [
            {
                "course_id": course.id,
                "session_date": d.session_date.isoformat(),
                "start_time": d.start_time,
                "end_time": d.end_time,
                "location": None,
                "notes": None,
                "is_cancelled": False,
                "created_at": now,
                "updated_at": now,
            }
            for d in drafts
        ]
        self.db[COURSE_SESSIONS].insert_many(docs, ordered=True)
        logger.info("Generated %d sessions for course %s", len(docs), course.id)
        return GenerationResult(created=len(docs), sessions=self.list_sessions(course.id))

    def add_session(self, ctx: AuthContext, course_id: str, payload: SessionIn) -> CourseSession:
        policy.require(ctx, "session.manage")
        _check_times(payload.start_time, payload.end_time)
        data = payload.model_dump(mode="json")
        data.update({"course_id": course_id, "is_cancelled": False})
        session_id = create_document(self.db, COURSE_SESSIONS, data)
        logger.info("Session %s added to course %s", session_id, course_id)
        return self.get(session_id)

    def update_session(self, ctx: AuthContext, session_id: str, payload: SessionUpdate) -> CourseSession:
        policy.require(ctx, "session.manage")
        current = self.get(session_id)
        update = payload.model_dump(mode="json", exclude_unset=True)
        if any(update.get(k, "") is None for k in ("session_date", "start_time", "end_time", "is_cancelled")):
            raise InvalidRequestError("Date, start time, end time and cancellation flag cannot be cleared")
        # generated sessions may wrap past midnight; only re-check times that change
        if "start_time" in update or "end_time" in update:
            _check_times(update.get("start_time", current.start_time), update.get("end_time", current.end_time))
        update["updated_at"] = utcnow()
        self.db[COURSE_SESSIONS].update_one({"_id": to_object_id(session_id)}, {"$set": update})
        logger.info("Session %s updated: %s", session_id, sorted(k for k in update if k != "updated_at"))
        return self.get(session_id)

    def delete_session(self, ctx: AuthContext, session_id: str) -> CourseSession:
        policy.require(ctx, "session.manage")
        session = self.get(session_id)
        self.db[ATTENDANCE].delete_many({"session_id": session_id})
        self.db[COURSE_SESSIONS].delete_one({"_id": to_object_id(session_id)})
        logger.info("Session %s of course %s deleted", session_id, session.course_id)
        return session

    def clear_sessions(self, ctx: AuthContext, course_id: str) -> int:
        policy.require(ctx, "session.manage")
        session_ids = [str(s["_id"]) for s in self.db[COURSE_SESSIONS].find({"course_id": course_id}, {"_id": 1})]
        if session_ids:
            self.db[ATTENDANCE].delete_many({"session_id": {"$in": session_ids}})
        res = self.db[COURSE_SESSIONS].delete_many({"course_id": course_id})
        logger.info("Cleared %d sessions of course %s", res.deleted_count, course_id)
        return res.deleted_count
