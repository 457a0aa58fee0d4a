"""
Denormalized counters: projection from events and reconciliation.
"""

import pytest

from conftest import ctx_for
from placement_portal.core.errors import ConflictError
from placement_portal.services.admin_service import AdminService
from placement_portal.services.college_service import CollegeService
from placement_portal.services.events import (
    ApplicationHired, JobPosted, StatsProjector, StudentRemoved
)
from placement_portal.services.job_service import JobService
from placement_portal.services.stats_service import StatsReconciler

CLEAN = {"jobs": 0, "companies": 0, "colleges": 0}


def company_stats(db, company):
    return db.companies.find_one({"_id": company["_id"]})["stats"]


def college_stats(db, college):
    return db.colleges.find_one({"_id": college["_id"]})["stats"]


def test_event_deltas():
    from bson import ObjectId
    job, company, college = ObjectId(), ObjectId(), ObjectId()

    assert JobPosted(job, company, is_open=False).deltas() == [
        ("companies", company, {"stats.total_jobs_posted": 1})
    ]
    hired = ApplicationHired(ObjectId(), job, ObjectId(), company, college, first_placement=False)
    assert [collection for collection, _, _ in hired.deltas()] == ["jobs", "companies"]
    removed = StudentRemoved(ObjectId(), college, was_verified=True, was_placed=True)
    assert removed.deltas()[0][2] == {
        "stats.total_students": -1, "stats.verified_students": -1, "stats.placed_students": -1,
    }


def test_projector_skips_missing_targets(db):
    hired = ApplicationHired(None, None, None, None)
    assert StatsProjector(db).apply([hired]) == 0


def test_job_status_changes_move_active_jobs_once(db, seed):
    company, actor = seed.company()
    ctx = ctx_for(actor)
    service = JobService(db)

    job = seed.job(actor)
    draft = seed.job(actor, status="draft")
    assert company_stats(db, company) == {"total_jobs_posted": 2, "active_jobs": 1, "total_hires": 0}

    service.close(ctx, job["_id"])
    assert company_stats(db, company)["active_jobs"] == 0
    with pytest.raises(ConflictError):
        service.close(ctx, job["_id"])
    assert company_stats(db, company)["active_jobs"] == 0

    service.update(ctx, draft["_id"], {"status": "open"})
    assert company_stats(db, company)["active_jobs"] == 1

    service.delete(ctx, draft["_id"])
    assert company_stats(db, company)["active_jobs"] == 0
    assert StatsReconciler(db).reconcile_all() == CLEAN


def test_stale_job_write_is_a_conflict(db, seed):
    company, actor = seed.company()
    job = seed.job(actor)
    service = JobService(db)

    # another request closed the job after this one read it
    db.jobs.update_one({"_id": job["_id"]}, {"$set": {"status": "filled"}})
    with pytest.raises(ConflictError):
        service._write_guarded(job, {"status": "closed"})


def test_student_events_keep_college_counters(db, seed):
    college, admin = seed.college()
    ctx = ctx_for(admin)
    service = CollegeService(db)

    verified, _ = seed.student(college)
    pending, _ = seed.student(college, verified=False)
    placed, _ = seed.student(college)
    assert college_stats(db, college) == {"total_students": 3, "verified_students": 2, "placed_students": 0}

    service.verify_student(ctx, pending["_id"])
    service.override_placement(ctx, placed["_id"], "placed", company="Acme", role="SDE", package=9)
    assert college_stats(db, college) == {"total_students": 3, "verified_students": 3, "placed_students": 1}

    service.reject_student(ctx, verified["_id"], "Fake documents")
    service.delete_student(ctx, placed["_id"])
    assert college_stats(db, college) == {"total_students": 2, "verified_students": 1, "placed_students": 0}
    assert StatsReconciler(db).reconcile_all() == CLEAN


def test_reconcile_repairs_drift(db, seed):
    college, _ = seed.college()
    company, actor = seed.company()
    seed.student(college)
    job = seed.job(actor)

    db.jobs.update_one({"_id": job["_id"]}, {"$set": {"stats.total_applications": 42}})
    db.companies.update_one({"_id": company["_id"]}, {"$set": {"stats.active_jobs": -3}})
    db.colleges.update_one({"_id": college["_id"]}, {"$inc": {"stats.total_students": 5}})

    admin = seed.super_admin()
    corrected = AdminService(db).reconcile_stats(ctx_for(admin))

    assert corrected == {"jobs": 1, "companies": 1, "colleges": 1}
    assert db.jobs.find_one({"_id": job["_id"]})["stats"]["total_applications"] == 0
    assert company_stats(db, company)["active_jobs"] == 1
    assert college_stats(db, college)["total_students"] == 1
    assert StatsReconciler(db).reconcile_all() == CLEAN
