"""
Shared fixtures for the tests: an in-memory MongoDB with the real indexes
applied, plus helpers to create users, courses and bearer tokens.
"""

from datetime import date, timedelta

import mongomock

from irati.courses import CourseRepository
from irati.database import AUTH_SESSIONS, PROFILES, USER_ROLES, ensure_indexes, utcnow
from irati.policy import AuthContext
from irati.schemas import CourseIn


def make_db():
    db = mongomock.MongoClient().iratitest
    ensure_indexes(db)
    return db


def add_user(db, name: str, role: str = None) -> AuthContext:
    res = db[PROFILES].insert_one({"name": name, "email": f"{name.lower()}@example.org"})
    user_id = str(res.inserted_id)
    if role is not None:
        db[USER_ROLES].insert_one({"user_id": user_id, "role": role, "created_at": utcnow()})
    return AuthContext(user_id=user_id, role=role or "socio")


def issue_token(db, ctx: AuthContext, token: str) -> dict:
    db[AUTH_SESSIONS].insert_one(
        {"token": token, "user_id": ctx.user_id, "expires_at": utcnow() + timedelta(days=7)}
    )
    return {"Authorization": f"Bearer {token}"}


def make_course(db, manager: AuthContext, **overrides):
    fields = {
        "title": "Python para todos",
        "category": "Programación",
        "start_date": date(2025, 3, 3),
        "end_date": date(2025, 3, 14),
        "schedule_days": ["monday", "wednesday"],
        "schedule_time": "10:00",
        "duration": "2 horas",
        "min_capacity": 1,
        "max_capacity": 2,
    }
    fields.update(overrides)
    return CourseRepository(db).create(manager, CourseIn(**fields))
