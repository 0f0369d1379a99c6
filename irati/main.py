import logging
import os
from contextlib import asynccontextmanager, contextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import PyMongoError

from irati import policy
from irati.agenda import build_calendar
from irati.assignments import AssignmentRegistry
from irati.attendance import AttendanceTracker
from irati.courses import CourseRepository
from irati.database import AUTH_SESSIONS, ensure_indexes, get_db, utcnow
from irati.enrollments import EnrollmentLedger
from irati.errors import IratiError
from irati.interviews import InterviewBook
from irati.policy import AuthContext
from irati.schemas import (
    AssignmentIn,
    AssignmentView,
    AttendanceMark,
    AttendanceRecord,
    AttendanceSummaryRow,
    CalendarEvent,
    Course,
    CourseDetail,
    CourseIn,
    CourseSession,
    CourseUpdate,
    Enrollment,
    EnrollmentView,
    EnrollRequest,
    Interview,
    InterviewIn,
    InterviewUpdate,
    MonitorAssignment,
    Profile,
    Role,
    RoleAssignment,
    RosterEntry,
    SessionIn,
    SessionUpdate,
    UserWithRole,
)
from irati.sessions import SessionStore
from irati.users import UserDirectory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(get_db())
    yield


app = FastAPI(title="Irati Course Management API", lifespan=lifespan)

frontend_origin = os.getenv("FRONTEND_URL", "*")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@contextmanager
def translate_errors(action: str):
    """Turn a failed operation into an HTTP error naming the action and the cause."""
    try:
        yield
    except IratiError as exc:
        logger.info("%s: %s", action, exc.message)
        raise HTTPException(status_code=exc.status_code, detail=f"{action}: {exc.message}")
    except PyMongoError as exc:
        logger.exception("%s failed", action)
        raise HTTPException(status_code=500, detail=f"{action}: {exc}")


# Auth helpers
async def get_current_user(authorization: Optional[str] = Header(None), db: Database = Depends(get_db)) -> AuthContext:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing token")
    token = authorization.split(" ", 1)[1].strip()
    sess = db[AUTH_SESSIONS].find_one({"token": token})
    if not sess:
        raise HTTPException(status_code=401, detail="Invalid token")
    if sess.get("expires_at") and sess["expires_at"] < utcnow():
        raise HTTPException(status_code=401, detail="Token expired")
    users = UserDirectory(db)
    try:
        users.get_profile(sess["user_id"])
    except IratiError:
        raise HTTPException(status_code=401, detail="User not found")
    return AuthContext(user_id=sess["user_id"], role=users.get_primary_role(sess["user_id"]))


@app.get("/")
def read_root():
    return {"message": "Irati Course Management API"}


@app.get("/test")
def test_database(db: Database = Depends(get_db)):
    resp = {
        "backend": "running",
        "database": "not_available",
        "database_name": getattr(db, "name", None),
        "collections": [],
    }
    try:
        resp["collections"] = db.list_collection_names()[:10]
        resp["database"] = "connected"
    except PyMongoError as e:
        resp["database"] = f"error: {str(e)[:50]}"
    return resp


# Users & roles
@app.get("/me", response_model=UserWithRole)
def me(ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Load profile"):
        profile = UserDirectory(db).get_profile(ctx.user_id)
    return UserWithRole(**profile.model_dump(), role=ctx.role)


@app.get("/users", response_model=List[UserWithRole])
def list_users(role: Optional[Role] = None, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("List users"):
        policy.require(ctx, "user.list")
        return UserDirectory(db).list_users(role=role)


@app.get("/professors", response_model=List[Profile])
def list_professors(ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("List professors"):
        return UserDirectory(db).list_professors()


@app.post("/users/{user_id}/roles")
def grant_role(user_id: str, payload: RoleAssignment, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Assign role"):
        UserDirectory(db).assign_role(ctx, user_id, payload.role)
    return {"message": f"Role {payload.role} assigned"}


@app.delete("/users/{user_id}/roles/{role}")
def revoke_role(user_id: str, role: Role, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Remove role"):
        UserDirectory(db).remove_role(ctx, user_id, role)
    return {"message": f"Role {role} removed"}


# Courses
@app.get("/courses", response_model=List[Course])
def list_courses(
    category: Optional[str] = None,
    status: Optional[str] = None,
    q: Optional[str] = None,
    ctx: AuthContext = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    with translate_errors("List courses"):
        return CourseRepository(db).list_courses(category=category, status=status, search=q)


@app.post("/courses", response_model=Course, status_code=201)
def create_course(payload: CourseIn, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Create course"):
        return CourseRepository(db).create(ctx, payload)


@app.get("/courses/{course_id}", response_model=CourseDetail)
def get_course(course_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Load course"):
        ledger = EnrollmentLedger(db)
        course = ledger.courses.get(course_id)
        return CourseDetail(**course.model_dump(), capacity=ledger.capacity_summary(course))


@app.put("/courses/{course_id}", response_model=Course)
def update_course(course_id: str, payload: CourseUpdate, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Update course"):
        return CourseRepository(db).update(ctx, course_id, payload)


@app.delete("/courses/{course_id}")
def delete_course(course_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Delete course"):
        CourseRepository(db).delete(ctx, course_id)
    return {"message": "Course deleted"}


# Sessions
@app.get("/courses/{course_id}/sessions", response_model=List[CourseSession])
def list_sessions(course_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("List sessions"):
        return SessionStore(db).list_sessions(course_id)


@app.post("/courses/{course_id}/sessions/generate")
def generate_sessions(course_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Generate sessions"):
        course = CourseRepository(db).get(course_id)
        result = SessionStore(db).generate_sessions(ctx, course)
    message = f"Created {result.created} sessions" if result.created else "No sessions to generate"
    return {"created": result.created, "message": message, "sessions": result.sessions}


@app.post("/courses/{course_id}/sessions", response_model=List[CourseSession], status_code=201)
def add_session(course_id: str, payload: SessionIn, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Add session"):
        CourseRepository(db).get(course_id)
        store = SessionStore(db)
        store.add_session(ctx, course_id, payload)
        return store.list_sessions(course_id)


@app.delete("/courses/{course_id}/sessions")
def clear_sessions(course_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Clear sessions"):
        deleted = SessionStore(db).clear_sessions(ctx, course_id)
    return {"deleted": deleted}


@app.patch("/sessions/{session_id}", response_model=List[CourseSession])
def update_session(session_id: str, payload: SessionUpdate, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Update session"):
        store = SessionStore(db)
        session = store.update_session(ctx, session_id, payload)
        return store.list_sessions(session.course_id)


@app.delete("/sessions/{session_id}", response_model=List[CourseSession])
def delete_session(session_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Delete session"):
        store = SessionStore(db)
        session = store.delete_session(ctx, session_id)
        return store.list_sessions(session.course_id)


# Enrollment
@app.post("/courses/{course_id}/enroll", response_model=Enrollment, status_code=201)
def enroll_course(
    course_id: str,
    payload: Optional[EnrollRequest] = None,
    ctx: AuthContext = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user_id = (payload.user_id if payload else None) or ctx.user_id
    with translate_errors("Enroll"):
        return EnrollmentLedger(db).enroll(ctx, course_id, user_id)


@app.get("/courses/{course_id}/enrollments", response_model=List[EnrollmentView])
def list_enrollments(course_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("List enrollments"):
        return EnrollmentLedger(db).list_enrollments(ctx, course_id)


@app.delete("/enrollments/{enrollment_id}")
def withdraw(enrollment_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Withdraw"):
        EnrollmentLedger(db).withdraw(ctx, enrollment_id)
    return {"message": "Enrollment withdrawn"}


@app.get("/my/courses", response_model=List[Course])
def my_courses(ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("List my courses"):
        return EnrollmentLedger(db).list_user_courses(ctx.user_id)


# Attendance
@app.get("/sessions/{session_id}/attendance", response_model=List[RosterEntry])
def session_attendance(session_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Load attendance"):
        return AttendanceTracker(db).session_roster(ctx, session_id)


@app.get("/sessions/{session_id}/attendance/{user_id}")
def attendance_status(session_id: str, user_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Load attendance"):
        status = AttendanceTracker(db).status_for(ctx, session_id, user_id)
    return {"session_id": session_id, "user_id": user_id, "status": status}


@app.put("/sessions/{session_id}/attendance/{user_id}", response_model=AttendanceRecord)
def mark_attendance(
    session_id: str,
    user_id: str,
    payload: AttendanceMark,
    ctx: AuthContext = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    with translate_errors("Update attendance"):
        return AttendanceTracker(db).set_status(ctx, session_id, user_id, payload.status, notes=payload.notes)


@app.get("/courses/{course_id}/attendance/summary", response_model=List[AttendanceSummaryRow])
def attendance_summary(course_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Attendance summary"):
        return AttendanceTracker(db).course_summary(ctx, course_id)


# Monitor assignments
@app.get("/assignments", response_model=List[AssignmentView])
def list_assignments(ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("List assignments"):
        return AssignmentRegistry(db).list_assignments(ctx)


@app.post("/assignments", response_model=MonitorAssignment, status_code=201)
def create_assignment(payload: AssignmentIn, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Assign member"):
        return AssignmentRegistry(db).assign(ctx, payload)


@app.delete("/assignments/{assignment_id}")
def delete_assignment(assignment_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Remove assignment"):
        AssignmentRegistry(db).unassign(ctx, assignment_id)
    return {"message": "Assignment removed"}


# Interviews
@app.get("/interviews", response_model=List[Interview])
def list_interviews(ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("List interviews"):
        return InterviewBook(db).list_interviews(ctx)


@app.post("/interviews", response_model=Interview, status_code=201)
def create_interview(payload: InterviewIn, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Schedule interview"):
        return InterviewBook(db).schedule(ctx, payload)


@app.put("/interviews/{interview_id}", response_model=Interview)
def update_interview(interview_id: str, payload: InterviewUpdate, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Update interview"):
        return InterviewBook(db).update(ctx, interview_id, payload)


@app.delete("/interviews/{interview_id}")
def delete_interview(interview_id: str, ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Delete interview"):
        InterviewBook(db).delete(ctx, interview_id)
    return {"message": "Interview deleted"}


@app.get("/calendar", response_model=List[CalendarEvent])
def calendar(ctx: AuthContext = Depends(get_current_user), db: Database = Depends(get_db)):
    with translate_errors("Load calendar"):
        return build_calendar(db, ctx)


def run():
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
