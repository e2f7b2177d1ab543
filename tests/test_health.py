def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_db_health(client):
    assert client.get("/health/db").json() == {"database": "ok"}
