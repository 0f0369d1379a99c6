import unittest

from irati.attendance import AttendanceTracker
from irati.database import ATTENDANCE
from irati.enrollments import EnrollmentLedger
from irati.errors import NotEnrolledError, PermissionDeniedError
from irati.schemas import SessionUpdate
from irati.sessions import SessionStore

from support import add_user, make_course, make_db


class TestAttendanceTracker(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_db()
        self.manager = add_user(self.db, "Gestora", "gestor")
        self.professor = add_user(self.db, "Profe", "professor")
        self.other_professor = add_user(self.db, "Otro", "professor")
        self.ana = add_user(self.db, "Ana")
        self.luis = add_user(self.db, "Luis")
        self.course = make_course(self.db, self.manager, instructor_id=self.professor.user_id)

        store = SessionStore(self.db)
        store.generate_sessions(self.manager, self.course)
        self.sessions = store.list_sessions(self.course.id)

        ledger = EnrollmentLedger(self.db)
        ledger.enroll(self.ana, self.course.id, self.ana.user_id)
        ledger.enroll(self.luis, self.course.id, self.luis.user_id)
        self.tracker = AttendanceTracker(self.db)

    def test_unmarked_is_pending(self) -> None:
        self.assertEqual(self.tracker.get_status(self.sessions[0].id, self.ana.user_id), "pending")

    def test_last_mark_wins_with_one_row(self) -> None:
        s = self.sessions[0].id
        self.tracker.set_status(self.manager, s, self.ana.user_id, "present")
        self.tracker.set_status(self.manager, s, self.ana.user_id, "absent")
        self.assertEqual(self.db[ATTENDANCE].count_documents({"session_id": s, "user_id": self.ana.user_id}), 1)
        self.assertEqual(self.tracker.get_status(s, self.ana.user_id), "absent")

    def test_any_transition_allowed(self) -> None:
        s = self.sessions[1].id
        for status in ("excused", "present", "pending", "absent", "present"):
            record = self.tracker.set_status(self.professor, s, self.luis.user_id, status)
            self.assertEqual(record.status, status)

    def test_notes_survive_status_change(self) -> None:
        s = self.sessions[0].id
        self.tracker.set_status(self.manager, s, self.ana.user_id, "excused", notes="Médico")
        record = self.tracker.set_status(self.manager, s, self.ana.user_id, "present")
        self.assertEqual(record.notes, "Médico")

    def test_only_manager_or_course_instructor_marks(self) -> None:
        s = self.sessions[0].id
        with self.assertRaises(PermissionDeniedError):
            self.tracker.set_status(self.other_professor, s, self.ana.user_id, "present")
        with self.assertRaises(PermissionDeniedError):
            self.tracker.set_status(self.ana, s, self.ana.user_id, "present")

    def test_marking_requires_enrollment(self) -> None:
        outsider = add_user(self.db, "Pepe")
        with self.assertRaises(NotEnrolledError):
            self.tracker.set_status(self.manager, self.sessions[0].id, outsider.user_id, "present")

    def test_members_read_only_their_own_status(self) -> None:
        s = self.sessions[0].id
        self.tracker.set_status(self.manager, s, self.ana.user_id, "present")
        self.assertEqual(self.tracker.status_for(self.ana, s, self.ana.user_id), "present")
        with self.assertRaises(PermissionDeniedError):
            self.tracker.status_for(self.luis, s, self.ana.user_id)

    def test_roster_lists_every_enrolled_member(self) -> None:
        s = self.sessions[0].id
        self.tracker.set_status(self.professor, s, self.luis.user_id, "absent")
        roster = {r.profile.name: r.status for r in self.tracker.session_roster(self.professor, s)}
        self.assertEqual(roster, {"Ana": "pending", "Luis": "absent"})

        own = self.tracker.session_roster(self.ana, s)
        self.assertEqual([r.user_id for r in own], [self.ana.user_id])

    def test_course_summary_skips_cancelled_sessions(self) -> None:
        SessionStore(self.db).update_session(self.manager, self.sessions[3].id, SessionUpdate(is_cancelled=True))
        self.tracker.set_status(self.manager, self.sessions[0].id, self.ana.user_id, "present")
        self.tracker.set_status(self.manager, self.sessions[1].id, self.ana.user_id, "absent")
        self.tracker.set_status(self.manager, self.sessions[2].id, self.ana.user_id, "excused")
        self.tracker.set_status(self.manager, self.sessions[3].id, self.ana.user_id, "present")

        rows = {r.user_id: r for r in self.tracker.course_summary(self.manager, self.course.id)}
        ana = rows[self.ana.user_id]
        self.assertEqual((ana.present, ana.absent, ana.excused, ana.pending), (1, 1, 1, 0))
        self.assertEqual(ana.rate, 50.0)
        luis = rows[self.luis.user_id]
        self.assertEqual(luis.pending, 3)
        self.assertIsNone(luis.rate)


if __name__ == "__main__":
    unittest.main()
