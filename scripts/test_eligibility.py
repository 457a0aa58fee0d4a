"""
Eligibility evaluator: the apply-time check and the listing filter must
agree on every job.
"""

from datetime import timedelta
from itertools import product

import mongomock
from bson import ObjectId

from placement_portal.services.eligibility import (
    IneligibilityReason, can_apply, eligible_jobs_filter, job_is_open
)
from placement_portal.utils.timeutils import utcnow


NOW = utcnow()


def make_student(**overrides):
    student = {
        "_id": ObjectId(),
        "college": ObjectId(),
        "department": "CSE",
        "batch": 2025,
        "cgpa": 7.5,
        "backlogs": {"active": 0, "history": 0},
        "is_verified": True,
    }
    student.update(overrides)
    return student


def make_job(**overrides):
    job = {
        "_id": ObjectId(),
        "status": "open",
        "application_deadline": NOW + timedelta(days=7),
        "eligibility": {
            "min_cgpa": 7.0,
            "max_backlogs": None,
            "allowed_departments": ["CSE", "ECE"],
            "allowed_batches": [2025],
        },
        "is_placement_drive": False,
        "college": None,
        "lifecycle": {"is_deleted": False},
    }
    job.update(overrides)
    return job


def test_eligible_student_is_allowed():
    verdict = can_apply(make_student(), make_job(), NOW)
    assert verdict.allowed
    assert bool(verdict)


def test_closed_or_expired_job():
    assert can_apply(make_student(), make_job(status="closed"), NOW).reason == IneligibilityReason.JOB_CLOSED
    expired = make_job(application_deadline=NOW - timedelta(seconds=1))
    assert can_apply(make_student(), expired, NOW).reason == IneligibilityReason.JOB_CLOSED
    deleted = make_job(lifecycle={"is_deleted": True})
    assert not job_is_open(deleted, NOW)


def test_deadline_is_inclusive():
    assert can_apply(make_student(), make_job(application_deadline=NOW), NOW).allowed


def test_cgpa_message_names_the_minimum():
    verdict = can_apply(make_student(cgpa=6.5), make_job(), NOW)
    assert verdict.reason == IneligibilityReason.CGPA_TOO_LOW
    assert verdict.message == "Minimum CGPA required: 7.0"


def test_missing_cgpa_counts_as_zero():
    job = make_job(eligibility={**make_job()["eligibility"], "min_cgpa": 0})
    assert can_apply(make_student(cgpa=None), job, NOW).allowed
    assert can_apply(make_student(cgpa=None), make_job(), NOW).reason == IneligibilityReason.CGPA_TOO_LOW


def test_backlogs():
    job = make_job(eligibility={**make_job()["eligibility"], "max_backlogs": 1})
    assert can_apply(make_student(backlogs={"active": 1}), job, NOW).allowed
    verdict = can_apply(make_student(backlogs={"active": 2}), job, NOW)
    assert verdict.reason == IneligibilityReason.TOO_MANY_BACKLOGS
    # no limit set
    assert can_apply(make_student(backlogs={"active": 9}), make_job(), NOW).allowed


def test_department_and_batch():
    assert can_apply(make_student(department="MECH"), make_job(), NOW).reason == \
        IneligibilityReason.DEPARTMENT_MISMATCH
    assert can_apply(make_student(batch=2024), make_job(), NOW).reason == IneligibilityReason.BATCH_MISMATCH


def test_empty_allowed_lists_admit_nobody():
    job = make_job(eligibility={"min_cgpa": 0, "allowed_departments": [], "allowed_batches": [2025]})
    assert can_apply(make_student(), job, NOW).reason == IneligibilityReason.DEPARTMENT_MISMATCH


def test_placement_drive_restricted_to_its_college():
    student = make_student()
    drive = make_job(is_placement_drive=True, college=ObjectId())
    assert can_apply(student, drive, NOW).reason == IneligibilityReason.WRONG_COLLEGE_DRIVE
    own_drive = make_job(is_placement_drive=True, college=student["college"])
    assert can_apply(student, own_drive, NOW).allowed


def test_unverified_profile():
    verdict = can_apply(make_student(is_verified=False), make_job(), NOW)
    assert verdict.reason == IneligibilityReason.PROFILE_NOT_VERIFIED


def test_already_applied_is_last():
    assert can_apply(make_student(), make_job(), NOW, has_applied=True).reason == \
        IneligibilityReason.ALREADY_APPLIED
    # a real ineligibility is reported ahead of it
    assert can_apply(make_student(cgpa=1), make_job(), NOW, has_applied=True).reason == \
        IneligibilityReason.CGPA_TOO_LOW


def test_listing_filter_agrees_with_apply_check():
    """Every job the listing shows is applicable, and every hidden one is rejected."""
    collection = mongomock.MongoClient().db.jobs
    colleges = [ObjectId(), ObjectId()]

    jobs = []
    for status, days, min_cgpa, max_backlogs, departments, drive_college in product(
        ["open", "closed"],
        [-1, 3],
        [None, 0, 7.0, 9.5],
        [None, 0, 2],
        [["CSE"], ["ECE"], []],
        [None, colleges[0], colleges[1]],
    ):
        eligibility = {
            "max_backlogs": max_backlogs,
            "allowed_departments": departments,
            "allowed_batches": [2025],
        }
        if min_cgpa is not None:
            eligibility["min_cgpa"] = min_cgpa
        jobs.append(make_job(
            status=status,
            application_deadline=NOW + timedelta(days=days),
            eligibility=eligibility,
            is_placement_drive=drive_college is not None,
            college=drive_college,
        ))
    collection.insert_many(jobs)

    students = [
        make_student(college=colleges[0]),
        make_student(college=colleges[1], cgpa=None, backlogs={"active": 1}),
        make_student(college=colleges[0], cgpa=9.8, backlogs={"active": 3}),
        make_student(college=colleges[0], department="ECE", batch=2026),
        make_student(college=colleges[1], is_verified=False),
    ]
    for student in students:
        listed = {j["_id"] for j in collection.find(eligible_jobs_filter(student, NOW))}
        allowed = {j["_id"] for j in jobs if can_apply(student, j, NOW).allowed}
        assert listed == allowed


def test_unverified_student_filter_matches_nothing():
    assert eligible_jobs_filter(make_student(is_verified=False), NOW) == {"_id": {"$in": []}}
