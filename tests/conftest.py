import os

# Must be set before studygroup.core.config is imported
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SEED_COURSES"] = "false"
os.environ["SMTP_HOST"] = ""

from unittest.mock import AsyncMock

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.database import AsyncSessionLocal, engine, get_db
from studygroup.main import create_app
from studygroup.models import Course, User
from studygroup.routes.chat import get_chat_service
from studygroup.services.chat import ChatService
from studygroup.services.mail import get_mailer
from studygroup.services.media import MediaStore, get_media_store


class FakeMediaStore(MediaStore):
    def __init__(self):
        self.stored = []
        self.deleted = []

    def owns(self, url):
        return bool(url) and url.startswith("https://media.test/")

    async def store(self, data, content_type, filename=None, folder=""):
        url = f"https://media.test/{folder}/{len(self.stored) + 1}-{filename or 'upload'}"
        self.stored.append((url, content_type, len(data)))
        return url

    async def delete(self, url):
        self.deleted.append(url)


class FakeMailer:
    def __init__(self):
        self.resets = []

    async def send_password_reset(self, to_email, token):
        self.resets.append((to_email, token))


@pytest.fixture
def media_store():
    return FakeMediaStore()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def publisher():
    return AsyncMock()


@pytest.fixture
def app(media_store, mailer, publisher):
    app = create_app()

    def chat_service(db: AsyncSession = Depends(get_db)):
        return ChatService(db, publisher)

    app.dependency_overrides[get_media_store] = lambda: media_store
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_chat_service] = chat_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
        # the in-memory database goes away with its only connection
        c.portal.call(engine.dispose)


def run_db(client, fn, *args):
    """Run ``fn(session, *args)`` on the app's event loop and return its result."""
    async def _run():
        async with AsyncSessionLocal() as db:
            result = await fn(db, *args)
            await db.commit()
            return result

    return client.portal.call(_run)


async def _add_course(db, code, name):
    course = Course(course_code=code, course_name=name, credits=3, department="Computer Science")
    db.add(course)
    await db.flush()
    return course.id


async def _make_admin(db, user_id):
    user = await db.get(User, user_id)
    user.role = "admin"


@pytest.fixture
def make_course(client):
    counter = {"n": 0}

    def _make(code=None, name="Course"):
        counter["n"] += 1
        return run_db(client, _add_course, code or f"CS {100 + counter['n']}", name)

    return _make


@pytest.fixture
def register(client):
    def _register(name="Alice", email=None, password="secret123"):
        email = email or f"{name.lower()}@example.com"
        r = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert r.status_code == 201, r.text
        body = r.json()
        return {
            "id": body["user"]["id"],
            "email": email,
            "headers": {"Authorization": f"Bearer {body['access_token']}"},
        }

    return _register


@pytest.fixture
def make_admin(client):
    def _make(user):
        run_db(client, _make_admin, user["id"])
        return user

    return _make


@pytest.fixture
def enroll(client):
    def _enroll(user, course_id):
        r = client.post(f"/api/courses/{course_id}/enroll", headers=user["headers"])
        assert r.status_code == 200, r.text

    return _enroll


@pytest.fixture
def make_group(client):
    def _make(user, course_id, name="Study Group", privacy="PUBLIC", max_members=10):
        r = client.post(
            "/api/groups",
            json={"name": name, "course_id": course_id, "privacy": privacy, "max_members": max_members},
            headers=user["headers"],
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _make
