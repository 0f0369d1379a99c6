"""
Role-scoped calendar.

Professors see every live session of the courses they teach. Everyone else
sees course start dates, highlighted for a member's own enrollments.
Managers and monitors also see interviews; a monitor only their own.
"""

from typing import List

from pymongo.database import Database

from irati import policy
from irati.courses import CourseRepository
from irati.enrollments import EnrollmentLedger
from irati.interviews import InterviewBook
from irati.policy import AuthContext
from irati.schemas import CalendarEvent
from irati.sessions import SessionStore


def build_calendar(db: Database, ctx: AuthContext) -> List[CalendarEvent]:
    courses = CourseRepository(db).list_courses()
    events: List[CalendarEvent] = []

    if ctx.role == policy.PROFESSOR:
        store = SessionStore(db)
        for course in courses:
            if course.instructor_id != ctx.user_id:
                continue
            for session in store.iter_sessions(course.id, include_cancelled=False):
                events.append(
                    CalendarEvent(
                        id=session.id,
                        title=course.title,
                        event_date=session.session_date,
                        type="course",
                        is_highlighted=True,
                        details=f"{course.category} - {session.start_time}",
                    )
                )
    else:
        enrolled = set()
        if ctx.role == policy.SOCIO:
            enrolled = {c.id for c in EnrollmentLedger(db).list_user_courses(ctx.user_id)}
        for course in courses:
            events.append(
                CalendarEvent(
                    id=course.id,
                    title=course.title,
                    event_date=course.start_date,
                    type="course",
                    is_highlighted=course.id in enrolled,
                    details=f"{course.category} - {course.instructor_name}",
                )
            )

    if ctx.role in (policy.GESTOR, policy.MONITOR):
        book = InterviewBook(db)
        interviews = book.list_interviews(ctx)
        profiles = book.assignments.users.profiles_by_ids(
            {i.socio_id for i in interviews} | {i.monitor_id for i in interviews}
        )

        def name(user_id):
            p = profiles.get(user_id)
            return p.name if p else "Unknown"

        for interview in interviews:
            events.append(
                CalendarEvent(
                    id=interview.id,
                    title=f"Interview: {name(interview.socio_id)}",
                    event_date=interview.scheduled_date.date(),
                    type="interview",
                    is_highlighted=True,
                    details=f"Monitor: {name(interview.monitor_id)}",
                )
            )

    events.sort(key=lambda e: e.event_date)
    return events
