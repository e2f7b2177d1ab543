import pytest

from studygroup.services.media import MediaStore


def test_profile_roundtrip(client, register):
    alice = register("Alice")

    r = client.put(
        "/api/user/profile",
        json={"bio": "CS sophomore", "university_name": "State University", "university_passing_gpa": 3.7},
        headers=alice["headers"],
    )
    assert r.status_code == 200

    profile = client.get("/api/user/profile", headers=alice["headers"]).json()
    assert profile["bio"] == "CS sophomore"
    assert profile["university_name"] == "State University"
    assert profile["university_passing_gpa"] == 3.7
    assert profile["name"] == "Alice"


def test_upload_avatar_replaces_previous(client, register, media_store):
    alice = register("Alice")

    r = client.post(
        "/api/user/upload-avatar",
        files={"file": ("me.png", b"\x89PNG fake", "image/png")},
        headers=alice["headers"],
    )
    assert r.status_code == 200
    first = r.json()["avatar_url"]

    r = client.post(
        "/api/user/upload-avatar",
        files={"file": ("me2.png", b"\x89PNG other", "image/png")},
        headers=alice["headers"],
    )
    second = r.json()["avatar_url"]
    assert second != first
    assert media_store.deleted == [first]
    assert client.get("/api/user/profile", headers=alice["headers"]).json()["avatar_url"] == second


def test_upload_avatar_rejects_non_images(client, register, media_store):
    alice = register("Alice")
    r = client.post(
        "/api/user/upload-avatar",
        files={"file": ("notes.pdf", b"%PDF", "application/pdf")},
        headers=alice["headers"],
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "Only image files are allowed"
    assert media_store.stored == []


def test_upload_avatar_rejects_large_files(client, register, media_store):
    alice = register("Alice")
    r = client.post(
        "/api/user/upload-avatar",
        files={"file": ("big.png", b"0" * (5 * 1024 * 1024 + 1), "image/png")},
        headers=alice["headers"],
    )
    assert r.status_code == 400
    assert media_store.stored == []


def test_remove_avatar(client, register, media_store):
    alice = register("Alice")
    url = client.post(
        "/api/user/upload-avatar",
        files={"file": ("me.png", b"\x89PNG fake", "image/png")},
        headers=alice["headers"],
    ).json()["avatar_url"]

    assert client.delete("/api/user/remove-avatar", headers=alice["headers"]).status_code == 200
    assert media_store.deleted == [url]
    assert client.get("/api/user/profile", headers=alice["headers"]).json()["avatar_url"] is None


def test_media_store_requires_store_and_delete():
    class UploadOnly(MediaStore):
        async def store(self, data, content_type, filename=None, folder=""):
            return "https://media.test/x"

    with pytest.raises(TypeError):
        MediaStore()
    with pytest.raises(TypeError):
        UploadOnly()
