"""
HTTP surface: envelopes, status codes and the request-level gates.
"""

from conftest import auth_header


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_token_is_401(client):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Not authorized. No token provided."}


def test_bad_token_is_401(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid or expired token"


def test_register_login_and_me(client):
    response = client.post("/api/auth/register", json={
        "email": "hr@acme.com", "password": "secret123", "role": "company", "company_name": "Acme",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Registration successful. Awaiting approval."
    assert body["data"]["user"]["role"] == "company"
    assert "password_hash" not in body["data"]["user"]

    response = client.post("/api/auth/login", json={"email": "hr@acme.com", "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["data"]["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["profile"]["name"] == "Acme"

    wrong = client.post("/api/auth/login", json={"email": "hr@acme.com", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json() == {"success": False, "message": "Invalid credentials"}


def test_request_validation_is_400(client):
    response = client.post("/api/auth/register", json={
        "email": "not-an-email", "password": "secret123", "role": "company", "company_name": "Acme",
    })
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "email" in response.json()["message"]


def test_duplicate_email_is_409(client, seed):
    payload = {"email": "hr@acme.com", "password": "secret123", "role": "company", "company_name": "Acme"}
    client.post("/api/auth/register", json=payload)
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == 409
    assert response.json()["message"] == "User with this email already exists"


def test_pending_account_is_403(client, seed):
    _, actor = seed.company(approved=False)
    assert client.get("/api/company/profile", headers=auth_header(actor)).status_code == 200
    assert client.get("/api/company/dashboard", headers=auth_header(actor)).status_code == 403


def test_wrong_role_is_403(client, seed):
    _, actor = seed.company()
    response = client.get("/api/admin/dashboard", headers=auth_header(actor))
    assert response.status_code == 403
    assert response.json()["success"] is False


def test_deactivated_account_is_401(client, seed, db):
    _, actor = seed.company()
    db.users.update_one({"_id": actor.id}, {"$set": {"is_active": False}})
    assert client.get("/api/company/profile", headers=auth_header(actor)).status_code == 401


def test_other_company_job_is_404(client, seed):
    _, owner = seed.company()
    _, rival = seed.company()
    job = seed.job(owner)

    assert client.get(f"/api/jobs/{job['_id']}", headers=auth_header(owner)).status_code == 200
    response = client.get(f"/api/jobs/{job['_id']}", headers=auth_header(rival))
    assert response.status_code == 404
    assert client.get("/api/jobs/not-an-id", headers=auth_header(owner)).status_code == 404


def test_include_deleted_is_super_admin_only(client, seed):
    college, admin = seed.college()
    response = client.get("/api/college/students?include_deleted=true", headers=auth_header(admin))
    assert response.status_code == 403

    root = seed.super_admin()
    response = client.get("/api/admin/colleges?include_deleted=true", headers=auth_header(root))
    assert response.status_code == 200


def test_maintenance_mode_is_503(client, seed):
    root = seed.super_admin()
    college, _ = seed.college()
    _, student = seed.student(college)

    response = client.put("/api/admin/settings", headers=auth_header(root),
                          json={"maintenance_mode": {"enabled": True, "message": "Back soon"}})
    assert response.status_code == 200

    blocked = client.get("/api/student/profile", headers=auth_header(student))
    assert blocked.status_code == 503
    assert blocked.json()["message"] == "Back soon"
    assert client.get("/api/admin/settings", headers=auth_header(root)).status_code == 200

    client.post("/api/admin/settings/reset", headers=auth_header(root))
    assert client.get("/api/student/profile", headers=auth_header(student)).status_code == 200


def test_unknown_settings_value_is_400(client, seed):
    root = seed.super_admin()
    response = client.put("/api/admin/settings", headers=auth_header(root),
                          json={"data_visibility": {"max_downloads_per_day": -5}})
    assert response.status_code == 400


def test_public_jobs_need_no_token(client, seed):
    _, owner = seed.company()
    seed.job(owner)
    seed.job(owner, status="draft")

    response = client.get("/api/jobs/public")
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert isinstance(body["data"][0]["_id"], str)


def test_apply_twice_is_409(client, seed):
    college, _ = seed.college()
    _, student = seed.student(college)
    _, company = seed.company()
    job = seed.job(company)

    first = client.post(f"/api/student/jobs/{job['_id']}/apply", headers=auth_header(student))
    assert first.status_code == 201
    assert first.json()["data"]["status"] == "applied"

    again = client.post(f"/api/student/jobs/{job['_id']}/apply", headers=auth_header(student))
    assert again.status_code == 409

    listed = client.get("/api/student/applications", headers=auth_header(student)).json()
    assert listed["pagination"]["total"] == 1


def test_college_activity_is_scoped(client, seed):
    college, admin = seed.college()
    other, other_admin = seed.college()
    student, _ = seed.student(college, verified=False)
    seed.student(other, verified=False)

    response = client.put(f"/api/college/students/{student['_id']}/verify", headers=auth_header(admin))
    assert response.status_code == 200

    mine = client.get("/api/college/activity-logs", headers=auth_header(admin)).json()
    assert [log["action"] for log in mine["data"]] == ["verify_student"]
    theirs = client.get("/api/college/activity-logs", headers=auth_header(other_admin)).json()
    assert theirs["data"] == []
