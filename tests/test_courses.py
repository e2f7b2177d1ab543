from studygroup.services.courses import DEFAULT_COURSES, EnrollmentService
from tests.conftest import run_db


def test_enroll_and_list(client, register, make_course):
    alice = register("Alice")
    course_id = make_course("CS 201", "Data Structures")

    r = client.post(f"/api/courses/{course_id}/enroll", headers=alice["headers"])
    assert r.status_code == 200

    mine = client.get("/api/courses/my-courses", headers=alice["headers"]).json()
    assert [c["course_code"] for c in mine] == ["CS 201"]

    r = client.post(f"/api/courses/{course_id}/enroll", headers=alice["headers"])
    assert r.status_code == 409
    assert r.json()["code"] == "ALREADY_ENROLLED"


def test_enroll_unknown_course(client, register):
    alice = register("Alice")
    r = client.post("/api/courses/999/enroll", headers=alice["headers"])
    assert r.status_code == 404


def test_unenroll(client, register, make_course, enroll):
    alice = register("Alice")
    course_id = make_course()

    r = client.delete(f"/api/courses/{course_id}/unenroll", headers=alice["headers"])
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_ENROLLED"

    enroll(alice, course_id)
    assert client.delete(f"/api/courses/{course_id}/unenroll", headers=alice["headers"]).status_code == 200
    assert client.get("/api/courses/my-courses", headers=alice["headers"]).json() == []


def test_peers_share_courses(client, register, make_course, enroll):
    alice, bob, carol = register("Alice"), register("Bob"), register("Carol")
    cs, math, chem = make_course("CS 101"), make_course("MATH 201"), make_course("CHEM 101")
    enroll(alice, cs)
    enroll(alice, math)
    enroll(bob, cs)
    enroll(bob, math)
    enroll(carol, chem)

    peers = client.get("/api/courses/peers", headers=alice["headers"]).json()
    assert len(peers) == 1
    assert peers[0]["user"]["id"] == bob["id"]
    assert sorted(c["course_code"] for c in peers[0]["common_courses"]) == ["CS 101", "MATH 201"]

    assert client.get("/api/courses/peers", headers=carol["headers"]).json() == []

    in_course = client.get(f"/api/courses/{cs}/peers", headers=alice["headers"]).json()
    assert [u["id"] for u in in_course] == [bob["id"]]


def test_search_courses(client, register, make_course):
    alice = register("Alice")
    make_course("CS 101", "Introduction to Computer Science")
    make_course("PHYS 101", "General Physics I")

    found = client.get("/api/courses", params={"search": "physics"}, headers=alice["headers"]).json()
    assert [c["course_code"] for c in found] == ["PHYS 101"]
    assert len(client.get("/api/courses", headers=alice["headers"]).json()) == 2


def test_catalog_changes_need_admin(client, register, make_admin):
    alice = register("Alice")
    course = {"course_code": "ENG 102", "course_name": "English Composition", "credits": 3}

    assert client.post("/api/courses", json=course, headers=alice["headers"]).status_code == 403

    make_admin(alice)
    r = client.post("/api/courses", json=course, headers=alice["headers"])
    assert r.status_code == 201
    course_id = r.json()["id"]

    r = client.post("/api/courses", json=course, headers=alice["headers"])
    assert r.status_code == 409

    r = client.put(f"/api/courses/{course_id}", json={"course_name": "Writing"}, headers=alice["headers"])
    assert r.json()["course_name"] == "Writing"
    assert r.json()["course_code"] == "ENG 102"


def test_delete_course_blocked_by_enrollments(client, register, make_admin, make_course, enroll):
    admin = make_admin(register("Admin"))
    bob = register("Bob")
    course_id = make_course()
    enroll(bob, course_id)

    r = client.delete(f"/api/courses/{course_id}", headers=admin["headers"])
    assert r.status_code == 409
    assert r.json()["code"] == "HAS_ENROLLMENTS"

    client.delete(f"/api/courses/{course_id}/unenroll", headers=bob["headers"])
    assert client.delete(f"/api/courses/{course_id}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/courses/{course_id}", headers=admin["headers"]).status_code == 404


async def _seed_twice(db):
    service = EnrollmentService(db)
    first = await service.seed_default_courses()
    second = await service.seed_default_courses()
    return first, second, len(await service.list_courses())


def test_seed_default_courses_only_when_empty(client):
    first, second, total = run_db(client, _seed_twice)
    assert first == len(DEFAULT_COURSES)
    assert second == 0
    assert total == len(DEFAULT_COURSES)


async def _course_count(db):
    return len(await EnrollmentService(db).list_courses())


def test_requires_authentication(client):
    assert client.get("/api/courses").status_code == 401
    r = client.get("/api/courses", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
    assert run_db(client, _course_count) == 0


def test_update_course_ignores_nulls_and_rejects_taken_codes(client, register, make_admin, make_course):
    admin = make_admin(register("Admin"))
    course_id = make_course("CS 101", "Intro")
    make_course("CS 201", "Data Structures")

    r = client.put(f"/api/courses/{course_id}", json={"course_code": None, "credits": 4}, headers=admin["headers"])
    assert r.status_code == 200
    assert r.json()["course_code"] == "CS 101"
    assert r.json()["credits"] == 4

    r = client.put(f"/api/courses/{course_id}", json={"course_code": "CS 201"}, headers=admin["headers"])
    assert r.status_code == 409
    assert r.json()["code"] == "ALREADY_EXISTS"
    assert client.get(f"/api/courses/{course_id}", headers=admin["headers"]).json()["course_code"] == "CS 101"


def test_delete_course_blocked_by_groups(client, register, make_admin, make_course, enroll, make_group):
    admin = make_admin(register("Admin"))
    bob = register("Bob")
    course_id = make_course()
    enroll(bob, course_id)
    make_group(bob, course_id)
    client.delete(f"/api/courses/{course_id}/unenroll", headers=bob["headers"])

    r = client.delete(f"/api/courses/{course_id}", headers=admin["headers"])
    assert r.status_code == 409
    assert r.json()["code"] == "HAS_GROUPS"
