import main
import storage
from database import SessionLocal

COURSE = {
    "title": "Calc I",
    "code": "MTH101",
    "description": "...",
    "semester": "Fall",
    "session": "2024/2025",
}


def test_seeded_admin_can_log_in_and_create_course(client):
    response = client.post("/api/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    assert response.json()["username"] == "admin"
    assert response.json()["isAdmin"] is True
    assert "password" not in response.json()
    assert "passwordHash" not in response.json()
    assert main.settings.session_cookie in client.cookies

    response = client.post("/api/courses", json=COURSE)
    assert response.status_code == 201
    assert response.json()["_id"]


def test_invalid_credentials_are_indistinguishable(client):
    unknown = client.post("/api/login", json={"username": "nobody", "password": "admin123"})
    wrong = client.post("/api/login", json={"username": "admin", "password": "wrong-password"})
    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"detail": "Invalid credentials"}


def test_current_user_requires_session(client):
    assert client.get("/api/user").status_code == 401

    client.post("/api/login", json={"username": "admin", "password": "admin123"})
    response = client.get("/api/user")
    assert response.status_code == 200
    assert response.json()["username"] == "admin"


def test_logout_invalidates_session(admin_client):
    assert admin_client.post("/api/logout").status_code == 200
    assert admin_client.get("/api/user").status_code == 401
    assert admin_client.post("/api/courses", json=COURSE).status_code == 401
    # Logging out twice is harmless.
    assert admin_client.post("/api/logout").status_code == 200


def test_anonymous_writes_are_rejected_without_side_effects(client):
    assert client.post("/api/courses", json=COURSE).status_code == 401
    assert client.put("/api/profile", json={"name": "Mallory"}).status_code == 401
    assert client.delete("/api/materials/abc").status_code == 401
    assert client.post("/api/events", data={"data": "{}"}).status_code == 401

    assert client.get("/api/courses").json() == []
    assert client.get("/api/profile").json()["name"] != "Mallory"


def test_registered_accounts_are_not_admins(client):
    response = client.post("/api/register", json={"username": "student", "password": "secret1"})
    assert response.status_code == 201
    assert response.json()["isAdmin"] is False

    # Registration signs the new account in.
    assert client.get("/api/user").json()["username"] == "student"
    response = client.post("/api/courses", json=COURSE)
    assert response.status_code == 403
    assert client.get("/api/courses").json() == []


def test_register_rejects_duplicate_username(client):
    response = client.post("/api/register", json={"username": "admin", "password": "another1"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Username already exists"


def test_register_validates_password_length(client):
    response = client.post("/api/register", json={"username": "someone", "password": "123"})
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "password"


def test_credentials_change_with_wrong_password_leaves_account_unchanged(admin_client):
    response = admin_client.put("/api/admin/credentials", json={
        "currentPassword": "not-the-password",
        "newPassword": "brand-new-secret",
    })
    assert response.status_code == 401

    admin_client.post("/api/logout")
    response = admin_client.post("/api/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200


def test_credentials_change_requires_fresh_login(admin_client):
    response = admin_client.put("/api/admin/credentials", json={
        "currentPassword": "admin123",
        "newUsername": "professor",
        "newPassword": "s3cret-pass",
    })
    assert response.status_code == 200
    assert admin_client.get("/api/user").status_code == 401

    old = admin_client.post("/api/login", json={"username": "admin", "password": "admin123"})
    assert old.status_code == 401
    new = admin_client.post("/api/login", json={"username": "professor", "password": "s3cret-pass"})
    assert new.status_code == 200
    assert new.json()["isAdmin"] is True


def test_credentials_change_needs_something_to_change(admin_client):
    response = admin_client.put("/api/admin/credentials", json={"currentPassword": "admin123"})
    assert response.status_code == 400


def test_credentials_change_rejects_taken_username(admin_client):
    db = SessionLocal()
    try:
        storage.create_account(db, "taken", "not-a-real-hash")
    finally:
        db.close()

    response = admin_client.put("/api/admin/credentials", json={
        "currentPassword": "admin123",
        "newUsername": "taken",
    })
    assert response.status_code == 400


def test_session_for_deleted_account_is_unauthenticated(admin_client):
    db = SessionLocal()
    try:
        account = storage.get_account_by_username(db, "admin")
        db.delete(account)
        db.commit()
    finally:
        db.close()

    assert admin_client.get("/api/user").status_code == 401
    assert admin_client.post("/api/courses", json=COURSE).status_code == 401
