import unittest
from datetime import date

from irati.attendance import AttendanceTracker
from irati.database import ATTENDANCE, COURSE_SESSIONS
from irati.enrollments import EnrollmentLedger
from irati.errors import InvalidRequestError, MissingScheduleError, PermissionDeniedError, SessionsAlreadyExistError
from irati.schemas import SessionIn, SessionUpdate
from irati.sessions import SessionStore

from support import add_user, make_course, make_db


class TestSessionStore(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_db()
        self.manager = add_user(self.db, "Gestora", "gestor")
        self.member = add_user(self.db, "Socio")
        self.course = make_course(self.db, self.manager)
        self.store = SessionStore(self.db)

    def test_generate_persists_expanded_schedule(self) -> None:
        result = self.store.generate_sessions(self.manager, self.course)
        self.assertEqual(result.created, 4)
        sessions = self.store.list_sessions(self.course.id)
        self.assertEqual(
            [s.session_date for s in sessions],
            [date(2025, 3, 3), date(2025, 3, 5), date(2025, 3, 10), date(2025, 3, 12)],
        )
        self.assertTrue(all(s.end_time == "12:00" and not s.is_cancelled for s in sessions))

    def test_second_generation_is_rejected(self) -> None:
        self.store.generate_sessions(self.manager, self.course)
        with self.assertRaises(SessionsAlreadyExistError):
            self.store.generate_sessions(self.manager, self.course)
        self.assertEqual(self.store.count_sessions(self.course.id), 4)

    def test_generate_after_clear(self) -> None:
        self.store.generate_sessions(self.manager, self.course)
        self.assertEqual(self.store.clear_sessions(self.manager, self.course.id), 4)
        self.assertEqual(self.store.generate_sessions(self.manager, self.course).created, 4)

    def test_nothing_to_generate(self) -> None:
        course = make_course(
            self.db, self.manager, start_date=date(2025, 3, 3), end_date=date(2025, 3, 8), schedule_days=["sunday"]
        )
        result = self.store.generate_sessions(self.manager, course)
        self.assertEqual(result.created, 0)
        self.assertEqual(self.store.count_sessions(course.id), 0)

    def test_generate_without_end_date(self) -> None:
        course = make_course(self.db, self.manager, end_date=None)
        with self.assertRaises(MissingScheduleError):
            self.store.generate_sessions(self.manager, course)

    def test_members_cannot_manage_sessions(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            self.store.generate_sessions(self.member, self.course)
        with self.assertRaises(PermissionDeniedError):
            self.store.add_session(self.member, self.course.id, SessionIn(session_date=date(2025, 4, 1)))

    def test_add_session_keeps_date_order(self) -> None:
        self.store.generate_sessions(self.manager, self.course)
        self.store.add_session(
            self.manager,
            self.course.id,
            SessionIn(session_date=date(2025, 3, 4), start_time="17:00", end_time="19:00", location="Aula 2"),
        )
        sessions = self.store.list_sessions(self.course.id)
        self.assertEqual(len(sessions), 5)
        self.assertEqual(sessions[1].session_date, date(2025, 3, 4))
        self.assertEqual(sessions[1].location, "Aula 2")

    def test_add_session_rejects_inverted_times(self) -> None:
        with self.assertRaises(InvalidRequestError):
            self.store.add_session(
                self.manager, self.course.id, SessionIn(session_date=date(2025, 4, 1), start_time="12:00", end_time="10:00")
            )

    def test_cancel_session_keeps_it_listed(self) -> None:
        self.store.generate_sessions(self.manager, self.course)
        first = self.store.list_sessions(self.course.id)[0]
        updated = self.store.update_session(self.manager, first.id, SessionUpdate(is_cancelled=True, notes="Festivo"))
        self.assertTrue(updated.is_cancelled)
        self.assertEqual(updated.notes, "Festivo")
        self.assertEqual(updated.start_time, "10:00")
        self.assertEqual(len(self.store.list_sessions(self.course.id)), 4)
        self.assertEqual(len(self.store.list_sessions(self.course.id, include_cancelled=False)), 3)

    def test_cancel_session_ending_at_midnight(self) -> None:
        course = make_course(self.db, self.manager, schedule_time="22:00", duration="2 horas")
        self.store.generate_sessions(self.manager, course)
        first = self.store.list_sessions(course.id)[0]
        self.assertEqual((first.start_time, first.end_time), ("22:00", "00:00"))

        updated = self.store.update_session(self.manager, first.id, SessionUpdate(is_cancelled=True))
        self.assertTrue(updated.is_cancelled)
        with self.assertRaises(InvalidRequestError):
            self.store.update_session(self.manager, first.id, SessionUpdate(end_time="21:00"))

    def test_required_fields_cannot_be_cleared(self) -> None:
        self.store.generate_sessions(self.manager, self.course)
        first = self.store.list_sessions(self.course.id)[0]
        for field in ("session_date", "start_time", "end_time", "is_cancelled"):
            with self.assertRaises(InvalidRequestError):
                self.store.update_session(self.manager, first.id, SessionUpdate.model_validate({field: None}))

        sessions = self.store.list_sessions(self.course.id)
        self.assertEqual(len(sessions), 4)
        self.assertEqual(sessions[0], first)

    def test_delete_session_removes_its_attendance(self) -> None:
        self.store.generate_sessions(self.manager, self.course)
        first, second = self.store.list_sessions(self.course.id)[:2]
        EnrollmentLedger(self.db).enroll(self.member, self.course.id, self.member.user_id)
        tracker = AttendanceTracker(self.db)
        tracker.set_status(self.manager, first.id, self.member.user_id, "present")
        tracker.set_status(self.manager, second.id, self.member.user_id, "absent")

        self.store.delete_session(self.manager, first.id)

        self.assertEqual(self.db[COURSE_SESSIONS].count_documents({"course_id": self.course.id}), 3)
        self.assertEqual(self.db[ATTENDANCE].count_documents({"session_id": first.id}), 0)
        self.assertEqual(self.db[ATTENDANCE].count_documents({"session_id": second.id}), 1)


if __name__ == "__main__":
    unittest.main()
