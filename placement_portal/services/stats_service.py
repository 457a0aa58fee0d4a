"""
Stats Reconciler

Recomputes every denormalized counter from the source documents:

    jobs.stats       total_applications, shortlisted, hired
    companies.stats  total_jobs_posted, active_jobs, total_hires
    colleges.stats   total_students, verified_students, placed_students

Run by a super admin after a suspected drift; the projector keeps them
current between runs.
"""

import logging
from typing import Optional, Dict, Any

from bson import ObjectId
from pymongo.database import Database

from placement_portal.db.mongodb import get_mongo_db, COLLECTIONS

logger = logging.getLogger(__name__)

NOT_DELETED = {"lifecycle.is_deleted": {"$ne": True}}


class StatsReconciler:

    def __init__(self, db: Optional[Database] = None):
        self.db = db if db is not None else get_mongo_db()
        self.jobs = self.db[COLLECTIONS["jobs"]]
        self.companies = self.db[COLLECTIONS["companies"]]
        self.colleges = self.db[COLLECTIONS["colleges"]]
        self.students = self.db[COLLECTIONS["students"]]
        self.applications = self.db[COLLECTIONS["applications"]]

    # ---------- pure recomputation ----------

    def job_stats(self, job_id: ObjectId) -> Dict[str, int]:
        return {
            "total_applications": self.applications.count_documents({"job": job_id}),
            "shortlisted": self.applications.count_documents(
                {"job": job_id, "status_history.status": "shortlisted"}
            ),
            "hired": self.applications.count_documents({"job": job_id, "status": "hired"}),
        }

    def company_stats(self, company_id: ObjectId) -> Dict[str, int]:
        return {
            "total_jobs_posted": self.jobs.count_documents({"company": company_id}),
            "active_jobs": self.jobs.count_documents({"company": company_id, "status": "open", **NOT_DELETED}),
            "total_hires": self.applications.count_documents({"company": company_id, "status": "hired"}),
        }

    def college_stats(self, college_id: ObjectId) -> Dict[str, int]:
        base = {"college": college_id, **NOT_DELETED}
        return {
            "total_students": self.students.count_documents(base),
            "verified_students": self.students.count_documents({**base, "is_verified": True}),
            "placed_students": self.students.count_documents({**base, "placement_status": "placed"}),
        }

    # ---------- write-back ----------

    def reconcile_job(self, job_id: ObjectId) -> Dict[str, int]:
        stats = self.job_stats(job_id)
        self.jobs.update_one({"_id": job_id}, {"$set": {"stats": stats}})
        return stats

    def reconcile_company(self, company_id: ObjectId) -> Dict[str, int]:
        stats = self.company_stats(company_id)
        self.companies.update_one({"_id": company_id}, {"$set": {"stats": stats}})
        return stats

    def reconcile_college(self, college_id: ObjectId) -> Dict[str, int]:
        stats = self.college_stats(college_id)
        self.colleges.update_one({"_id": college_id}, {"$set": {"stats": stats}})
        return stats

    def reconcile_all(self) -> Dict[str, Any]:
        """Recompute every counter; returns how many documents were corrected."""
        corrected = {"jobs": 0, "companies": 0, "colleges": 0}

        for doc in self.jobs.find({}, {"stats": 1}):
            if self._differs(doc, self.reconcile_job(doc["_id"])):
                corrected["jobs"] += 1
        for doc in self.companies.find({}, {"stats": 1}):
            if self._differs(doc, self.reconcile_company(doc["_id"])):
                corrected["companies"] += 1
        for doc in self.colleges.find({}, {"stats": 1}):
            if self._differs(doc, self.reconcile_college(doc["_id"])):
                corrected["colleges"] += 1

        logger.info("Stats reconciled; corrected documents: %s", corrected)
        return corrected

    @staticmethod
    def _differs(doc: dict, stats: Dict[str, int]) -> bool:
        current = doc.get("stats") or {}
        return any(current.get(key, 0) != value for key, value in stats.items())
