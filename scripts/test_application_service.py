"""
Apply / shortlist / status pipeline, including the counters each step moves.
"""

import pytest

from conftest import ctx_for
from placement_portal.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from placement_portal.services.application_service import ApplicationService
from placement_portal.services.settings_service import PlatformSettings
from placement_portal.services.state_machine import is_monotonic
from placement_portal.services.stats_service import StatsReconciler


@pytest.fixture
def world(seed):
    college, college_admin = seed.college()
    company, company_actor = seed.company()
    student, student_actor = seed.student(college, cgpa=8.0)
    job = seed.job(company_actor, min_cgpa=6.0)
    return {
        "college": college, "college_admin": college_admin,
        "company": company, "company_actor": company_actor,
        "student": student, "student_actor": student_actor,
        "job": job,
    }


def job_stats(db, job):
    return db.jobs.find_one({"_id": job["_id"]})["stats"]


def test_apply_creates_application_and_counts_it(db, world):
    outcome = ApplicationService(db).apply(ctx_for(world["student_actor"]), str(world["job"]["_id"]), "Hi")

    application = db.applications.find_one({"_id": outcome.doc["_id"]})
    assert application["status"] == "applied"
    assert application["source"] == "apply"
    assert application["cover_letter"] == "Hi"
    assert [h["status"] for h in application["status_history"]] == ["applied"]
    assert job_stats(db, world["job"])["total_applications"] == 1


def test_ineligible_apply_writes_nothing(db, seed, world):
    weak, weak_actor = seed.student(world["college"], cgpa=5.0)

    with pytest.raises(AuthorizationError) as exc:
        ApplicationService(db).apply(ctx_for(weak_actor), world["job"]["_id"])

    assert exc.value.message == "Minimum CGPA required: 6.0"
    assert db.applications.count_documents({}) == 0
    assert job_stats(db, world["job"])["total_applications"] == 0


def test_duplicate_apply_is_a_conflict(db, world):
    service = ApplicationService(db)
    ctx = ctx_for(world["student_actor"])
    service.apply(ctx, world["job"]["_id"])

    with pytest.raises(ConflictError) as exc:
        service.apply(ctx, world["job"]["_id"])

    assert exc.value.field == "application"
    assert db.applications.count_documents({}) == 1
    assert job_stats(db, world["job"])["total_applications"] == 1


def test_racing_shortlists_create_one_application(db, world):
    service = ApplicationService(db)
    # both requests miss each other's insert on the existence lookup
    service.applications.find_one = lambda *args, **kwargs: None
    ctx = ctx_for(world["company_actor"])

    service.shortlist(ctx, world["student"]["_id"], world["job"]["_id"])
    with pytest.raises(ConflictError):
        service.shortlist(ctx, world["student"]["_id"], world["job"]["_id"])

    assert db.applications.count_documents({}) == 1
    stats = job_stats(db, world["job"])
    assert stats["total_applications"] == 1
    assert stats["shortlisted"] == 1


def test_shortlist_without_application(db, world):
    outcome = ApplicationService(db).shortlist(
        ctx_for(world["company_actor"]), world["student"]["_id"], world["job"]["_id"], notes="Strong profile"
    )

    assert outcome.doc["status"] == "shortlisted"
    assert outcome.doc["source"] == "shortlist"
    assert outcome.doc["company_notes"] == "Strong profile"
    student = db.students.find_one({"_id": world["student"]["_id"]})
    assert student["placement_status"] == "in_process"
    notification = db.notifications.find_one({"recipient": world["student_actor"].id})
    assert notification["type"] == "shortlisted"


def test_shortlist_checks_eligibility_for_new_applications(db, seed, world):
    other_dept, _ = seed.student(world["college"], department="MECH")
    with pytest.raises(AuthorizationError):
        ApplicationService(db).shortlist(ctx_for(world["company_actor"]), other_dept["_id"], world["job"]["_id"])
    assert db.applications.count_documents({}) == 0


def test_agency_cannot_shortlist_students_it_cannot_see(db, seed, world):
    agency, agency_actor = seed.company(company_type="placement_agency")
    job = seed.job(agency_actor)
    service = ApplicationService(db)

    with pytest.raises(NotFoundError):
        service.shortlist(ctx_for(agency_actor), world["student"]["_id"], job["_id"])
    assert db.applications.count_documents({}) == 0
    assert db.students.find_one({"_id": world["student"]["_id"]})["placement_status"] == "not_placed"
    listed, _ = service.list_for_company(ctx_for(agency_actor))
    assert listed == []

    seed.grant_access(agency, world["college"])
    outcome = service.shortlist(ctx_for(agency_actor), world["student"]["_id"], job["_id"])
    assert outcome.doc["status"] == "shortlisted"


def test_shortlist_follows_data_visibility(db, seed, world):
    hidden = PlatformSettings.model_validate({"data_visibility": {"student_data_visible_to_companies": False}})
    with pytest.raises(AuthorizationError):
        ApplicationService(db, hidden).shortlist(
            ctx_for(world["company_actor"]), world["student"]["_id"], world["job"]["_id"]
        )

    unverified, _ = seed.student(world["college"], verified=False)
    with pytest.raises(NotFoundError):
        ApplicationService(db).shortlist(ctx_for(world["company_actor"]), unverified["_id"], world["job"]["_id"])
    assert db.applications.count_documents({}) == 0


def test_shortlist_advances_existing_application(db, world):
    service = ApplicationService(db)
    service.apply(ctx_for(world["student_actor"]), world["job"]["_id"])

    outcome = service.shortlist(ctx_for(world["company_actor"]), world["student"]["_id"], world["job"]["_id"])

    assert outcome.doc["status"] == "shortlisted"
    stats = job_stats(db, world["job"])
    assert stats["total_applications"] == 1
    assert stats["shortlisted"] == 1
    with pytest.raises(ConflictError):
        service.shortlist(ctx_for(world["company_actor"]), world["student"]["_id"], world["job"]["_id"])


def test_full_pipeline_to_hired(db, world):
    service = ApplicationService(db)
    company_ctx = ctx_for(world["company_actor"])
    application = service.apply(ctx_for(world["student_actor"]), world["job"]["_id"]).doc

    service.update_status(company_ctx, application["_id"], "shortlisted")
    service.update_status(company_ctx, application["_id"], "offered",
                          offer={"package": 12.5, "role": "Backend Engineer"})
    hired = service.update_status(company_ctx, application["_id"], "hired", remarks="Joined").doc

    assert hired["status"] == "hired"
    assert [h["status"] for h in hired["status_history"]] == ["applied", "shortlisted", "offered", "hired"]
    assert is_monotonic(hired["status_history"])

    student = db.students.find_one({"_id": world["student"]["_id"]})
    assert student["placement_status"] == "placed"
    assert student["placement_details"]["company"] == world["company"]["name"]
    assert student["placement_details"]["role"] == "Backend Engineer"
    assert student["placement_details"]["package"] == 12.5

    stats = job_stats(db, world["job"])
    assert (stats["total_applications"], stats["shortlisted"], stats["hired"]) == (1, 1, 1)
    assert db.companies.find_one({"_id": world["company"]["_id"]})["stats"]["total_hires"] == 1
    assert db.colleges.find_one({"_id": world["college"]["_id"]})["stats"]["placed_students"] == 1
    assert StatsReconciler(db).reconcile_all() == {"jobs": 0, "companies": 0, "colleges": 0}


def test_terminal_application_rejects_further_writes(db, world):
    service = ApplicationService(db)
    company_ctx = ctx_for(world["company_actor"])
    application = service.apply(ctx_for(world["student_actor"]), world["job"]["_id"]).doc
    service.update_status(company_ctx, application["_id"], "hired")

    with pytest.raises(ConflictError):
        service.update_status(company_ctx, application["_id"], "rejected")
    with pytest.raises(ConflictError):
        service.update_status(company_ctx, application["_id"], "hired")
    assert job_stats(db, world["job"])["hired"] == 1


def test_backward_transition_is_refused(db, world):
    service = ApplicationService(db)
    company_ctx = ctx_for(world["company_actor"])
    application = service.apply(ctx_for(world["student_actor"]), world["job"]["_id"]).doc
    service.update_status(company_ctx, application["_id"], "interviewed")

    with pytest.raises(ValidationError):
        service.update_status(company_ctx, application["_id"], "shortlisted")
    assert job_stats(db, world["job"])["shortlisted"] == 0


def test_company_cannot_withdraw(db, world):
    service = ApplicationService(db)
    application = service.apply(ctx_for(world["student_actor"]), world["job"]["_id"]).doc
    with pytest.raises(AuthorizationError):
        service.update_status(ctx_for(world["company_actor"]), application["_id"], "withdrawn")


def test_other_company_sees_not_found(db, seed, world):
    service = ApplicationService(db)
    application = service.apply(ctx_for(world["student_actor"]), world["job"]["_id"]).doc
    _, rival = seed.company()

    with pytest.raises(NotFoundError):
        service.update_status(ctx_for(rival), application["_id"], "hired")
    with pytest.raises(NotFoundError):
        service.shortlist(ctx_for(rival), world["student"]["_id"], world["job"]["_id"])

    assert db.applications.find_one({"_id": application["_id"]})["status"] == "applied"
    assert job_stats(db, world["job"])["hired"] == 0


def test_student_withdraws_and_answers_offers(db, seed, world):
    service = ApplicationService(db)
    student_ctx = ctx_for(world["student_actor"])
    company_ctx = ctx_for(world["company_actor"])

    first = service.apply(student_ctx, world["job"]["_id"]).doc
    withdrawn = service.withdraw(student_ctx, first["_id"]).doc
    assert withdrawn["status"] == "withdrawn"
    with pytest.raises(ConflictError):
        service.withdraw(student_ctx, first["_id"])

    second_job = seed.job(world["company_actor"])
    second = service.apply(student_ctx, second_job["_id"]).doc
    with pytest.raises(ValidationError):
        service.respond_to_offer(student_ctx, second["_id"], accept=True)

    service.update_status(company_ctx, second["_id"], "offered", offer={"package": 10})
    accepted = service.respond_to_offer(student_ctx, second["_id"], accept=True).doc
    assert accepted["status"] == "offer_accepted"
    assert accepted["offer"]["response"] == "accepted"
    assert accepted["offer"]["responded_at"] is not None


def test_second_hire_does_not_double_count_placement(db, seed, world):
    service = ApplicationService(db)
    student_ctx = ctx_for(world["student_actor"])
    company_ctx = ctx_for(world["company_actor"])
    other_job = seed.job(world["company_actor"])

    for job in (world["job"], other_job):
        application = service.apply(student_ctx, job["_id"]).doc
        service.update_status(company_ctx, application["_id"], "hired")

    assert db.colleges.find_one({"_id": world["college"]["_id"]})["stats"]["placed_students"] == 1
    assert db.companies.find_one({"_id": world["company"]["_id"]})["stats"]["total_hires"] == 2
    # the first placement's details are kept
    details = db.students.find_one({"_id": world["student"]["_id"]})["placement_details"]
    assert details["role"] == world["job"]["title"]
    assert StatsReconciler(db).reconcile_all() == {"jobs": 0, "companies": 0, "colleges": 0}


def test_listings_attach_summaries(db, world):
    service = ApplicationService(db)
    service.apply(ctx_for(world["student_actor"]), world["job"]["_id"])

    mine, pager = service.list_for_student(ctx_for(world["student_actor"]))
    assert pager["total"] == 1
    assert mine[0]["job_summary"]["title"] == world["job"]["title"]
    assert mine[0]["job_summary"]["company_name"] == world["company"]["name"]

    theirs, _ = service.list_for_company(ctx_for(world["company_actor"]), job_id=world["job"]["_id"])
    assert theirs[0]["student_summary"]["department"] == "CSE"
