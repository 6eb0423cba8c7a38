import os
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

# 1. Set required env vars BEFORE app imports to satisfy pydantic-settings Fail Fast
os.environ["SUPABASE_URL"] = "http://test"
os.environ["SUPABASE_KEY"] = "testkey"
os.environ["ADMIN_EMAILS"] = "admin@gmail.com"
os.environ.pop("OPENAI_API_KEY", None)

import main as app_module  # noqa: E402
from app.api.deps import get_upvote_toggle, get_vision_client  # noqa: E402
from app.core.database import get_db  # noqa: E402
from app.services.vision import VisionClient  # noqa: E402

NOW = datetime.now(timezone.utc)

TOKENS = {
    "tok-asha": ("user-asha", "asha@gmail.com"),
    "tok-ben": ("user-ben", "ben@gmail.com"),
    "tok-admin": ("user-admin", "admin@gmail.com"),
}

UNIQUE_PAIRS = {"upvotes": ("report_id", "user_id"), "report_verifications": ("report_id", "user_id")}


def iso(dt):
    return dt.isoformat()


# 2. In-memory stand-in for the Supabase client: table builder, storage and auth
class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.orders = []
        self.max_rows = None
        self.count_mode = None
        self.head = False

    def select(self, columns="*", count=None, head=None):
        self.count_mode = count
        self.head = bool(head)
        return self

    def insert(self, values):
        self.op, self.payload = "insert", values
        return self

    def update(self, values):
        self.op, self.payload = "update", values
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def limit(self, n):
        self.max_rows = n
        return self

    def _matching(self):
        return [row for row in self.db.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def execute(self):
        self.db.calls.append((self.table, self.op))
        failure = self.db.failures.get((self.table, self.op))
        if failure:
            raise failure

        if self.op == "insert":
            return FakeResponse([self.db.insert(self.table, self.payload)])
        if self.op == "update":
            rows = self._matching()
            for row in rows:
                row.update(self.payload)
            return FakeResponse([dict(r) for r in rows])
        if self.op == "delete":
            rows = self._matching()
            self.db.tables[self.table] = [r for r in self.db.tables[self.table] if r not in rows]
            return FakeResponse(rows)

        rows = self._matching()
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
        if self.max_rows is not None:
            rows = rows[: self.max_rows]
        count = len(rows) if self.count_mode else None
        if self.head:
            return FakeResponse([], count)
        return FakeResponse([self.db.expand(self.table, r) for r in rows], count)


class FakeBucket:
    def __init__(self, db, name):
        self.db = db
        self.name = name

    def upload(self, path, data, file_options=None):
        self.db.calls.append(("storage", "upload"))
        if self.db.failures.get(("storage", "upload")):
            raise self.db.failures[("storage", "upload")]
        self.db.uploads[path] = data
        return {"Key": path}

    def get_public_url(self, path):
        return f"https://cdn.test/{self.name}/{path}"


class FakeStorage:
    def __init__(self, db):
        self.db = db

    def from_(self, name):
        return FakeBucket(self.db, name)


class FakeAuth:
    def __init__(self, db):
        self.db = db

    def get_user(self, token):
        self.db.calls.append(("auth", "get_user"))
        if token not in TOKENS:
            raise ValueError("invalid JWT")
        user_id, email = TOKENS[token]
        return SimpleNamespace(user=SimpleNamespace(id=user_id, email=email))

    def sign_in_with_otp(self, payload):
        self.db.calls.append(("auth", "sign_in_with_otp"))

    def verify_otp(self, payload):
        self.db.calls.append(("auth", "verify_otp"))
        if payload["token"] != "123456":
            raise ValueError("Token has expired or is invalid")
        return SimpleNamespace(
            session=SimpleNamespace(access_token="fake_jwt_token"),
            user=SimpleNamespace(id="user-asha"),
        )


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.failures = {}
        self.uploads = {}
        self.storage = FakeStorage(self)
        self.auth = FakeAuth(self)

    def table(self, name):
        return FakeQuery(self, name)

    def insert(self, table, values):
        row = dict(values)
        unique = UNIQUE_PAIRS.get(table)
        if unique and any(all(r.get(c) == row.get(c) for c in unique) for r in self.tables.get(table, [])):
            raise APIError({"message": "duplicate key value violates unique constraint", "code": "23505"})
        row.setdefault("id", uuid.uuid4().hex)
        row.setdefault("created_at", iso(datetime.now(timezone.utc)))
        if table == "reports":
            row.setdefault("status", "open")
            row.setdefault("ai_metadata", None)
            row.setdefault("resolved_at", None)
        self.tables.setdefault(table, []).append(row)
        return dict(row)

    def _user(self, user_id):
        for u in self.tables.get("users", []):
            if u["id"] == user_id:
                return {"display_name": u["display_name"], "avatar_url": u.get("avatar_url")}
        return None

    def expand(self, table, row):
        """Mimic PostgREST embedded selects for the relations the app asks for."""
        row = dict(row)
        if table == "reports":
            user = self._user(row.get("created_by"))
            # Supabase sometimes hands back to-one relations as lists
            row.setdefault("user", [user] if user else None)
            block = next((b for b in self.tables.get("blocks", []) if b["id"] == row.get("block_id")), None)
            row.setdefault("block", {"name": block["name"], "slug": block["slug"]} if block else None)
            row.setdefault("upvotes", [
                {"user_id": u["user_id"]} for u in self.tables.get("upvotes", []) if u["report_id"] == row["id"]
            ])
            row.setdefault("verifications", [
                {"user_id": v["user_id"]} for v in self.tables.get("report_verifications", []) if v["report_id"] == row["id"]
            ])
            row.setdefault("replies", [
                {**r, "author": self._user(r["author_id"])}
                for r in self.tables.get("report_replies", []) if r["report_id"] == row["id"]
            ])
        if table == "report_replies":
            row.setdefault("author", self._user(row.get("author_id")))
        return row


def seed(db):
    db.tables["users"] = [
        {"id": "user-asha", "display_name": "Asha", "email": "asha@gmail.com", "avatar_url": "https://img.test/asha.png",
         "contribution_score": 120, "created_at": iso(NOW - timedelta(days=90))},
        {"id": "user-ben", "display_name": "Ben", "email": "ben@gmail.com", "avatar_url": None,
         "contribution_score": 40, "created_at": iso(NOW - timedelta(days=60))},
        {"id": "user-admin", "display_name": "Admin", "email": "admin@gmail.com", "avatar_url": None,
         "contribution_score": 0, "created_at": iso(NOW - timedelta(days=120))},
    ]
    db.tables["public_profiles"] = [
        {k: u[k] for k in ("id", "display_name", "avatar_url", "contribution_score", "created_at")}
        for u in db.tables["users"]
    ]
    db.tables["blocks"] = [
        {"id": "block-loop", "name": "Loop", "slug": "loop", "need_score": 45, "created_at": iso(NOW - timedelta(days=200))},
        {"id": "block-pilsen", "name": "Pilsen", "slug": "pilsen", "need_score": 68, "created_at": iso(NOW - timedelta(days=199))},
    ]
    db.tables["reports"] = [
        {"id": "rep-1", "type": "pothole", "description": "Deep pothole on State St", "status": "open",
         "lat": 41.8781, "lng": -87.6298, "photo_url": "https://cdn.test/p1.jpg", "created_by": "user-asha",
         "block_id": "block-loop", "created_at": iso(NOW - timedelta(days=2)), "resolved_at": None,
         "resolved_note": None, "ai_metadata": None},
        {"id": "rep-2", "type": "trash", "description": None, "status": "resolved",
         "lat": 41.8790, "lng": -87.6300, "photo_url": "https://cdn.test/p2.jpg", "created_by": "user-ben",
         "block_id": "block-loop", "created_at": iso(NOW - timedelta(days=5)),
         "resolved_at": iso(NOW - timedelta(days=3)), "resolved_note": "Picked up", "ai_metadata": None},
        {"id": "rep-3", "type": "other", "description": "Water everywhere", "status": "civic_bodies_notified",
         "lat": 41.8564, "lng": -87.6598, "photo_url": "https://cdn.test/p3.jpg", "created_by": "user-ben",
         "block_id": "block-pilsen", "created_at": iso(NOW - timedelta(days=1)), "resolved_at": None,
         "resolved_note": None, "ai_metadata": None},
    ]
    db.tables["upvotes"] = [
        {"id": "up-1", "report_id": "rep-1", "user_id": "user-ben", "created_at": iso(NOW - timedelta(days=1))},
        {"id": "up-2", "report_id": "rep-2", "user_id": "user-asha", "created_at": iso(NOW - timedelta(days=4))},
        {"id": "up-3", "report_id": "rep-1", "user_id": "user-admin", "created_at": iso(NOW - timedelta(hours=5))},
    ]
    db.tables["report_verifications"] = [
        {"id": "ver-1", "report_id": "rep-2", "user_id": "user-asha", "created_at": iso(NOW - timedelta(days=2))},
        {"id": "ver-2", "report_id": "rep-2", "user_id": "user-admin", "created_at": iso(NOW - timedelta(days=2))},
    ]
    db.tables["report_replies"] = [
        {"id": "reply-2", "report_id": "rep-1", "author_id": "user-asha", "body": "Still there today",
         "created_at": iso(NOW - timedelta(hours=2))},
        {"id": "reply-1", "report_id": "rep-1", "author_id": "user-ben", "body": "Hit it on my bike",
         "created_at": iso(NOW - timedelta(days=1))},
    ]
    return db


def auth(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def fake_db():
    return seed(FakeSupabase())


@pytest.fixture
def vision():
    # No API key: every AI call is a soft failure unless a test swaps this out
    return VisionClient(api_key="")


@pytest.fixture
def client(fake_db, vision):
    app_module.app.dependency_overrides[get_db] = lambda: fake_db
    app_module.app.dependency_overrides[get_vision_client] = lambda: vision
    get_upvote_toggle.cache_clear()
    yield TestClient(app_module.app)
    app_module.app.dependency_overrides.clear()
