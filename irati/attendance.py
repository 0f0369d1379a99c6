"""
Attendance tracking per (session, enrolled member).

A missing record reads as "pending". Marking is a single upsert on the
(session_id, user_id) unique key, so concurrent markers cannot create two
rows; the last write wins. Any status may follow any other.
"""

import logging
from collections import Counter, defaultdict
from typing import Dict, List, Optional

from pymongo.database import Database

from irati import policy
from irati.database import ATTENDANCE, utcnow
from irati.enrollments import EnrollmentLedger
from irati.errors import NotEnrolledError
from irati.policy import AuthContext
from irati.schemas import AttendanceRecord, AttendanceStatus, AttendanceSummaryRow, RosterEntry, from_doc
from irati.sessions import SessionStore

logger = logging.getLogger(__name__)

PENDING = "pending"


class AttendanceTracker:
    def __init__(self, db: Database):
        self.db = db
        self.sessions = SessionStore(db)
        self.ledger = EnrollmentLedger(db)

    def get_record(self, session_id: str, user_id: str) -> Optional[AttendanceRecord]:
        doc = self.db[ATTENDANCE].find_one({"session_id": session_id, "user_id": user_id})
        return from_doc(AttendanceRecord, doc) if doc else None

    def get_status(self, session_id: str, user_id: str) -> AttendanceStatus:
        record = self.get_record(session_id, user_id)
        return record.status if record else PENDING

    def status_for(self, ctx: AuthContext, session_id: str, user_id: str) -> AttendanceStatus:
        session = self.sessions.get(session_id)
        course = self.ledger.courses.get(session.course_id)
        policy.require(ctx, "attendance.view", owner_id=user_id, instructor_id=course.instructor_id)
        return self.get_status(session_id, user_id)

    def set_status(
        self,
        ctx: AuthContext,
        session_id: str,
        user_id: str,
        status: AttendanceStatus,
        notes: Optional[str] = None,
    ) -> AttendanceRecord:
        session = self.sessions.get(session_id)
        course = self.ledger.courses.get(session.course_id)
        policy.require(ctx, "attendance.mark", instructor_id=course.instructor_id)
        if not self.ledger.is_enrolled(course.id, user_id):
            raise NotEnrolledError(f"User {user_id} is not enrolled in \"{course.title}\"")

        now = utcnow()
        fields = {"status": status, "updated_at": now}
        if notes is not None:
            fields["notes"] = notes
        self.db[ATTENDANCE].update_one(
            {"session_id": session_id, "user_id": user_id},
            {"$set": fields, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )
        logger.info("Attendance %s for user %s in session %s (by %s)", status, user_id, session_id, ctx.user_id)
        return self.get_record(session_id, user_id)

    def session_roster(self, ctx: AuthContext, session_id: str) -> List[RosterEntry]:
        session = self.sessions.get(session_id)
        course = self.ledger.courses.get(session.course_id)
        enrollments = self.ledger.course_enrollments(course.id)
        if not policy.can(ctx, "attendance.view", instructor_id=course.instructor_id):
            enrollments = [e for e in enrollments if e.user_id == ctx.user_id]

        records: Dict[str, AttendanceRecord] = {
            d["user_id"]: from_doc(AttendanceRecord, d)
            for d in self.db[ATTENDANCE].find({"session_id": session_id})
        }
        profiles = self.ledger.users.profiles_by_ids(e.user_id for e in enrollments)

        roster = []
        for e in enrollments:
            record = records.get(e.user_id)
            roster.append(
                RosterEntry(
                    user_id=e.user_id,
                    enrollment_id=e.id,
                    profile=profiles.get(e.user_id),
                    status=record.status if record else PENDING,
                    notes=record.notes if record else None,
                )
            )
        return roster

    def course_summary(self, ctx: AuthContext, course_id: str) -> List[AttendanceSummaryRow]:
        """
        Per-member tallies over the course's non-cancelled sessions. Sessions
        never marked for a member count as pending. The rate is present over
        present + absent; excused sessions do not count against it.
        """
        course = self.ledger.courses.get(course_id)
        enrollments = self.ledger.course_enrollments(course.id)
        if not policy.can(ctx, "attendance.view", instructor_id=course.instructor_id):
            enrollments = [e for e in enrollments if e.user_id == ctx.user_id]

        session_ids = [s.id for s in self.sessions.iter_sessions(course.id, include_cancelled=False)]
        counts: Dict[str, Counter] = defaultdict(Counter)
        if session_ids:
            for d in self.db[ATTENDANCE].find({"session_id": {"$in": session_ids}}):
                counts[d["user_id"]][d.get("status", PENDING)] += 1

        profiles = self.ledger.users.profiles_by_ids(e.user_id for e in enrollments)
        rows = []
        for e in enrollments:
            c = counts[e.user_id]
            marked = c["present"] + c["absent"] + c["excused"]
            held = c["present"] + c["absent"]
            rows.append(
                AttendanceSummaryRow(
                    user_id=e.user_id,
                    profile=profiles.get(e.user_id),
                    present=c["present"],
                    absent=c["absent"],
                    excused=c["excused"],
                    pending=len(session_ids) - marked,
                    rate=round(c["present"] / held * 100, 2) if held else None,
                )
            )
        return rows
