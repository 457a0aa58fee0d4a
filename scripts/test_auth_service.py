"""
Registration, login and password changes.
"""

import pytest

from placement_portal.core.auth import decode_token
from placement_portal.core.errors import (
    AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
)
from placement_portal.core.policy import Actor
from placement_portal.services.auth_service import AuthService
from placement_portal.services.settings_service import PlatformSettings


def college_signup(**overrides):
    data = {"email": "tpo@iitx.edu", "password": "secret123", "role": "college_admin",
            "college_name": "IIT X", "college_code": "iitx", "city": "Pune", "state": "MH",
            "departments": ["CSE"]}
    data.update(overrides)
    return data


def student_signup(**overrides):
    data = {"email": "Riya@IITX.edu", "password": "secret123", "role": "student", "college_code": "COL1",
            "first_name": "Riya", "last_name": "S", "department": "CSE", "batch": 2025,
            "roll_number": "CS101", "phone": "9000000000"}
    data.update(overrides)
    return data


def test_college_registration_awaits_approval(db):
    result = AuthService(db).register(college_signup())

    assert result["message"] == "Registration successful. Awaiting approval."
    assert result["user"]["is_approved"] is False
    assert result["profile"]["code"] == "IITX"
    assert result["profile"]["is_verified"] is False
    user = db.users.find_one({"email": "tpo@iitx.edu"})
    assert user["college_profile"] == result["profile"]["_id"]
    assert user["password_hash"] != "secret123"
    assert decode_token(result["token"])["sub"] == str(user["_id"])


def test_auto_approval_rule(db):
    platform = PlatformSettings.model_validate({"approval_rules": {"auto_approve_companies": True}})
    result = AuthService(db, platform).register(
        {"email": "hr@acme.com", "password": "secret123", "role": "company", "company_name": "Acme"}
    )
    assert result["user"]["is_approved"] is True
    assert result["profile"]["is_approved"] is True
    assert result["profile"]["type"] == "company"


def test_duplicate_email_and_code(db):
    service = AuthService(db)
    service.register(college_signup())

    with pytest.raises(ConflictError) as exc:
        service.register(college_signup(college_code="other"))
    assert exc.value.field == "email"

    with pytest.raises(ConflictError) as exc:
        service.register(college_signup(email="second@iitx.edu"))
    assert exc.value.field == "code"
    # the half-created account was removed again
    assert db.users.count_documents({"email": "second@iitx.edu"}) == 0


def test_registration_toggles(db):
    closed = PlatformSettings.model_validate({"registration": {"agencies_enabled": False}})
    with pytest.raises(AuthorizationError):
        AuthService(db, closed).register({"email": "a@agency.com", "password": "secret123", "role": "company",
                                          "company_name": "Agency", "company_type": "placement_agency"})
    with pytest.raises(AuthorizationError):
        AuthService(db).register({"email": "root@x.com", "password": "secret123", "role": "super_admin"})
    with pytest.raises(ValidationError):
        AuthService(db).register({"email": "c@x.com", "password": "secret123", "role": "company"})


def test_student_self_registration(db, seed):
    college, _ = seed.college()
    result = AuthService(db).register(student_signup(college_code=college["code"].lower()))

    profile = result["profile"]
    assert profile["email"] == "riya@iitx.edu"
    assert profile["college"] == college["_id"]
    assert profile["is_verified"] is False
    assert profile["source"] == "self_registration"
    assert profile["user"] == result["user"]["id"]
    assert db.colleges.find_one({"_id": college["_id"]})["stats"]["total_students"] == 1


def test_student_registration_rules(db, seed):
    with pytest.raises(NotFoundError):
        AuthService(db).register(student_signup(college_code="NOPE"))

    unverified, _ = seed.college(verified=False)
    with pytest.raises(NotFoundError):
        AuthService(db).register(student_signup(college_code=unverified["code"]))

    college, _ = seed.college()
    db.colleges.update_one({"_id": college["_id"]}, {"$set": {"settings.allow_student_self_signup": False}})
    with pytest.raises(AuthorizationError):
        AuthService(db).register(student_signup(college_code=college["code"]))

    off = PlatformSettings.model_validate({"student_self_signup": {"enabled": False}})
    with pytest.raises(AuthorizationError):
        AuthService(db, off).register(student_signup(college_code=college["code"]))


def test_login_and_password_change(db):
    service = AuthService(db)
    service.register(college_signup())

    with pytest.raises(AuthenticationError):
        service.login("tpo@iitx.edu", "wrong")
    result = service.login("TPO@iitx.edu", "secret123")
    assert result["user"]["last_login"] is not None
    assert result["profile"]["code"] == "IITX"

    actor = Actor.from_user(db.users.find_one({"email": "tpo@iitx.edu"}))
    with pytest.raises(ValidationError):
        service.change_password(actor, "wrong", "newsecret")
    service.change_password(actor, "secret123", "newsecret")
    service.login("tpo@iitx.edu", "newsecret")


def test_deactivated_account_cannot_login(db):
    service = AuthService(db)
    service.register(college_signup())
    db.users.update_one({"email": "tpo@iitx.edu"}, {"$set": {"is_active": False}})

    with pytest.raises(AuthenticationError) as exc:
        service.login("tpo@iitx.edu", "secret123")
    assert "deactivated" in exc.value.message


def test_bootstrap_super_admin(db):
    service = AuthService(db)
    service.create_super_admin("Root@Portal.io", "rootpass1")

    result = service.login("root@portal.io", "rootpass1")
    assert result["user"]["role"] == "super_admin"
    assert result["profile"] is None
    with pytest.raises(ConflictError):
        service.create_super_admin("root@portal.io", "another1")
