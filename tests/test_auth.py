from datetime import timedelta

from sqlalchemy import select

from studygroup.core import config
from studygroup.models import PasswordResetToken, utcnow
from studygroup.services import users as users_service
from studygroup.services.users import UserService
from tests.conftest import run_db


def test_register_and_login(client, register):
    alice = register("Alice", email="Alice@Example.com")

    me = client.get("/api/auth/me", headers=alice["headers"]).json()
    assert me["email"] == "alice@example.com"
    assert me["role"] == "student"

    r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "secret123"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"
    assert r.json()["user"]["id"] == alice["id"]


def test_register_duplicate_email(client, register):
    register("Alice")
    r = client.post(
        "/api/auth/register",
        json={"name": "Other", "email": "alice@example.com", "password": "secret123"},
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "Email already exists"


def test_register_validates_payload(client):
    r = client.post("/api/auth/register", json={"name": "A", "email": "nope", "password": "123"})
    assert r.status_code == 422


def test_login_with_wrong_password(client, register):
    register("Alice")
    r = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong-pass"})
    assert r.status_code == 403
    assert r.json()["detail"] == "Invalid email or password"


def test_update_password(client, register):
    alice = register("Alice")

    r = client.post(
        "/api/auth/update-password",
        json={"current_password": "bad-password", "new_password": "newsecret"},
        headers=alice["headers"],
    )
    assert r.status_code == 400

    r = client.post(
        "/api/auth/update-password",
        json={"current_password": "secret123", "new_password": "newsecret"},
        headers=alice["headers"],
    )
    assert r.status_code == 200
    r = client.post("/api/auth/login", json={"email": alice["email"], "password": "newsecret"})
    assert r.status_code == 200


def test_password_reset_flow(client, register, mailer):
    alice = register("Alice")

    r = client.post("/api/auth/forgot-password", json={"email": alice["email"]})
    assert r.status_code == 200
    (to_email, token), = mailer.resets
    assert to_email == alice["email"]

    r = client.post("/api/auth/reset-password", json={"token": token, "new_password": "brand-new"})
    assert r.status_code == 200

    r = client.post("/api/auth/reset-password", json={"token": token, "new_password": "again123"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Reset token already used"

    r = client.post("/api/auth/login", json={"email": alice["email"], "password": "brand-new"})
    assert r.status_code == 200


def test_forgot_password_unknown_email(client, mailer):
    r = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
    assert r.status_code == 404
    assert mailer.resets == []


def test_reset_with_unknown_token(client):
    r = client.post("/api/auth/reset-password", json={"token": "nope", "new_password": "whatever"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid reset token"


async def _expire_tokens(db):
    for token in (await db.execute(select(PasswordResetToken))).scalars():
        token.expires_at = utcnow() - timedelta(minutes=1)


def test_reset_with_expired_token(client, register, mailer):
    alice = register("Alice")
    client.post("/api/auth/forgot-password", json={"email": alice["email"]})
    run_db(client, _expire_tokens)

    token = mailer.resets[0][1]
    r = client.post("/api/auth/reset-password", json={"token": token, "new_password": "brand-new"})
    assert r.status_code == 400
    assert r.json()["detail"] == "Reset token has expired"


async def _token_rows(db):
    return (await db.execute(select(PasswordResetToken))).scalars().all()


def test_new_reset_request_replaces_previous_token(client, register, mailer):
    alice = register("Alice")
    client.post("/api/auth/forgot-password", json={"email": alice["email"]})
    client.post("/api/auth/forgot-password", json={"email": alice["email"]})

    rows = run_db(client, _token_rows)
    assert [row.token for row in rows] == [mailer.resets[1][1]]


def test_reset_token_collision_is_retried(client, register, mailer, monkeypatch):
    alice, bob = register("Alice"), register("Bob")
    monkeypatch.setattr(users_service, "new_reset_token", lambda: "taken-token")
    client.post("/api/auth/forgot-password", json={"email": alice["email"]})

    candidates = iter(["taken-token", "fresh-token"])
    monkeypatch.setattr(users_service, "new_reset_token", lambda: next(candidates))
    r = client.post("/api/auth/forgot-password", json={"email": bob["email"]})
    assert r.status_code == 200
    assert mailer.resets[-1] == (bob["email"], "fresh-token")


def test_reset_token_gives_up_after_three_collisions(client, register, mailer, monkeypatch):
    alice, bob = register("Alice"), register("Bob")
    monkeypatch.setattr(users_service, "new_reset_token", lambda: "taken-token")
    client.post("/api/auth/forgot-password", json={"email": alice["email"]})

    r = client.post("/api/auth/forgot-password", json={"email": bob["email"]})
    assert r.status_code == 503
    assert r.json()["code"] == "TOKEN_GENERATION_FAILED"
    assert len(mailer.resets) == 1


def test_configured_admin_email_registers_as_admin(client, register, monkeypatch):
    monkeypatch.setattr(config, "ADMIN_EMAILS", ["boss@example.com"])
    boss = register("Boss", email="Boss@Example.com")
    student = register("Alice")

    assert client.get("/api/auth/me", headers=boss["headers"]).json()["role"] == "admin"
    assert client.get("/api/auth/me", headers=student["headers"]).json()["role"] == "student"

    r = client.post("/api/courses", json={"course_code": "CS 300", "course_name": "Compilers"}, headers=boss["headers"])
    assert r.status_code == 201


async def _promote(db, emails):
    return await UserService(db).promote_admins(emails)


def test_promote_admins_updates_existing_accounts(client, register):
    alice = register("Alice")

    assert run_db(client, _promote, ["ALICE@example.com", "ghost@example.com"]) == 1
    assert run_db(client, _promote, ["alice@example.com"]) == 0
    assert client.get("/api/auth/me", headers=alice["headers"]).json()["role"] == "admin"
