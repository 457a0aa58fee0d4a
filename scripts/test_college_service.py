"""
College admin operations on students and company access requests.
"""

import pytest

from conftest import ctx_for
from placement_portal.core.errors import ConflictError, NotFoundError
from placement_portal.services.college_service import CollegeService


def student_row(n, **overrides):
    row = {
        "first_name": "Asha", "last_name": f"K{n}", "email": f"asha{n}@college.edu", "phone": "98765",
        "department": "CSE", "batch": 2025, "roll_number": f"CS{n:03d}", "cgpa": 8.1,
        "backlogs": {"active": 0, "history": 0}, "skills": ["java"], "resume_url": None,
    }
    row.update(overrides)
    return row


def test_added_students_start_verified(db, seed):
    college, admin = seed.college()
    student = CollegeService(db).add_student(ctx_for(admin), student_row(1)).doc

    assert student["is_verified"] is True
    assert student["name"] == {"first_name": "Asha", "last_name": "K1"}
    assert student["source"] == "manual"
    stats = db.colleges.find_one({"_id": college["_id"]})["stats"]
    assert stats["total_students"] == 1
    assert stats["verified_students"] == 1


def test_roll_number_unique_per_college(db, seed):
    _, admin = seed.college()
    _, other_admin = seed.college()
    service = CollegeService(db)
    service.add_student(ctx_for(admin), student_row(1))

    with pytest.raises(ConflictError) as exc:
        service.add_student(ctx_for(admin), student_row(2, roll_number="CS001"))
    assert exc.value.field == "roll_number"

    # the same roll number is fine at another college
    service.add_student(ctx_for(other_admin), student_row(3, roll_number="CS001"))


def test_bulk_add_reports_rows(db, seed):
    college, admin = seed.college()
    rows = [student_row(1), student_row(2), student_row(3, email="asha1@college.edu")]

    results = CollegeService(db).bulk_add_students(ctx_for(admin), rows)

    assert len(results["success"]) == 2
    assert len(results["failed"]) == 1
    assert "email" in results["failed"][0]["error"]
    assert db.colleges.find_one({"_id": college["_id"]})["stats"]["total_students"] == 2


def test_students_of_other_colleges_are_not_found(db, seed):
    college, _ = seed.college()
    _, other_admin = seed.college()
    student, _ = seed.student(college)
    service = CollegeService(db)

    with pytest.raises(NotFoundError):
        service.get_student(ctx_for(other_admin), student["_id"])
    with pytest.raises(NotFoundError):
        service.verify_student(ctx_for(other_admin), student["_id"])
    listed, _ = service.list_students(ctx_for(other_admin))
    assert listed == []


def test_verify_and_reject_are_exclusive(db, seed):
    college, admin = seed.college()
    student, student_actor = seed.student(college, verified=False)
    service = CollegeService(db)

    verified = service.verify_student(ctx_for(admin), student["_id"]).doc
    assert verified["is_verified"] and not verified["is_rejected"]
    assert db.users.find_one({"_id": student_actor.id})["is_approved"] is True
    assert db.notifications.find_one({"recipient": student_actor.id})["type"] == "student_verified"
    with pytest.raises(ConflictError):
        service.verify_student(ctx_for(admin), student["_id"])

    rejected = service.reject_student(ctx_for(admin), student["_id"], "Wrong roll number").doc
    assert rejected["is_rejected"] and not rejected["is_verified"]
    assert rejected["rejection_reason"] == "Wrong roll number"
    assert db.users.find_one({"_id": student_actor.id})["is_approved"] is False


def test_delete_is_soft_and_deactivates_login(db, seed):
    college, admin = seed.college()
    student, student_actor = seed.student(college)
    service = CollegeService(db)

    service.delete_student(ctx_for(admin), student["_id"])

    raw = db.students.find_one({"_id": student["_id"]})
    assert raw["lifecycle"]["is_deleted"] is True
    assert raw["lifecycle"]["deleted_by"] == admin.id
    assert db.users.find_one({"_id": student_actor.id})["is_active"] is False
    with pytest.raises(NotFoundError):
        service.get_student(ctx_for(admin), student["_id"])
    with pytest.raises(NotFoundError):
        service.delete_student(ctx_for(admin), student["_id"])

    admin_view, _ = service.list_students(ctx_for(seed.super_admin(), include_deleted=True))
    assert [s["_id"] for s in admin_view] == [student["_id"]]


def test_list_students_filters(db, seed):
    college, admin = seed.college()
    seed.student(college, department="CSE")
    seed.student(college, department="ECE", verified=False)
    service = CollegeService(db)

    ece, pager = service.list_students(ctx_for(admin), department="ECE")
    assert pager["total"] == 1
    pending, _ = service.list_students(ctx_for(admin), is_verified=False)
    assert [s["department"] for s in pending] == ["ECE"]
    # regex metacharacters are matched literally
    nothing, _ = service.list_students(ctx_for(admin), search="(.*")
    assert nothing == []


def test_star_toggle(db, seed):
    college, admin = seed.college()
    student, _ = seed.student(college)
    service = CollegeService(db)

    assert service.toggle_star(ctx_for(admin), student["_id"])["is_star_student"] is True
    assert service.toggle_star(ctx_for(admin), student["_id"])["is_star_student"] is False


def test_respond_to_access_request(db, seed):
    college, admin = seed.college()
    company, _ = seed.company()
    seed.grant_access(company, college, status="pending")
    service = CollegeService(db)

    requests = service.access_requests(ctx_for(admin), status="pending")
    assert [r["company"]["_id"] for r in requests] == [company["_id"]]

    service.respond_access(ctx_for(admin), company["_id"], approved=True)
    entry = db.companies.find_one({"_id": company["_id"]})["college_access"][0]
    assert entry["status"] == "approved"
    assert entry["responded_by"] == admin.id

    _, stranger = seed.college()
    with pytest.raises(NotFoundError):
        service.respond_access(ctx_for(stranger), company["_id"], approved=True)


def test_college_can_close_self_signup(db, seed):
    college, admin = seed.college()
    updated = CollegeService(db).update_settings(ctx_for(admin), False)
    assert updated["settings"]["allow_student_self_signup"] is False
