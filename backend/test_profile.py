import models
import storage
from database import SessionLocal


def test_first_read_creates_default_profile(client):
    first = client.get("/api/profile")
    assert first.status_code == 200
    assert first.json()["name"] == "Professor Name"
    assert first.json()["contact"]["email"] == "professor@university.edu"
    assert client.get("/api/profile").json()["_id"] == first.json()["_id"]


def test_update_profile_merges_fields(admin_client):
    response = admin_client.put("/api/profile", json={
        "name": "Dr. Ada Obi",
        "bio": "Works on numerical analysis.",
        "contact": {"email": "ada.obi@university.edu", "office": "Room 214"},
    })
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Dr. Ada Obi"
    assert body["title"] == "Professor"
    assert body["contact"] == {"email": "ada.obi@university.edu", "phone": None, "office": "Room 214"}

    response = admin_client.put("/api/profile", json={"title": "Associate Professor"})
    assert response.json()["name"] == "Dr. Ada Obi"
    assert response.json()["title"] == "Associate Professor"


def test_profile_contact_requires_valid_email(admin_client):
    response = admin_client.put("/api/profile", json={"contact": {"phone": "555-0100"}})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "contact.email"

    response = admin_client.put("/api/profile", json={"contact": {"email": "not-an-email"}})
    assert response.status_code == 400


def test_profile_is_a_single_row():
    first, second, racer = SessionLocal(), SessionLocal(), SessionLocal()
    try:
        a = storage.get_profile(first)
        b = storage.get_profile(second)
        assert a.id == b.id == storage.PROFILE_ID

        # A second creation attempt, as from a racing request, lands on the same row.
        assert storage._new_profile(racer, {"name": "Dr. Ada Obi"}).id == storage.PROFILE_ID
        assert racer.query(models.Profile).count() == 1
        assert racer.get(models.Profile, storage.PROFILE_ID).name == "Dr. Ada Obi"
    finally:
        first.close()
        second.close()
        racer.close()


def test_default_contact_is_not_shared(admin_client):
    admin_client.get("/api/profile")
    admin_client.put("/api/profile", json={"contact": {"email": "ada.obi@university.edu"}})
    assert storage.DEFAULT_PROFILE["contact"]["email"] == "professor@university.edu"
